"""Tests for text normalization, similarity and JSON extraction helpers."""

import pytest

from search_chat.text import (
    SNIPPET_MAX_LENGTH,
    clamp_int,
    collapse_whitespace,
    dice_similarity,
    ellipsize,
    extract_first_json_object,
    is_near_duplicate,
    keywordize_query,
    normalize_for_compare,
    normalize_query_list,
    sanitize_search_text,
    summarize_top_domains,
    to_bigrams,
    to_int,
    to_str,
)


class TestCoercion:
    """Tests for to_str / to_int / clamp_int."""

    @pytest.mark.parametrize("value", [None, 3, 2.5, ["a"], {"a": 1}, b"bytes"])
    def test__to_str__non_strings_become_empty(self, value) -> None:
        assert to_str(value) == ""

    def test__to_str__keeps_strings(self) -> None:
        assert to_str("  keep  ") == "  keep  "

    @pytest.mark.parametrize(
        "value,expected",
        [
            (7, 7),
            (7.9, 7),
            (-2.5, -2),
            ("12", 12),
            ("4.8", 4),
            ("abc", 99),
            (None, 99),
            (float("nan"), 99),
            (True, 1),
            (10**400, 10**400),
        ],
    )
    def test__to_int__truncates_or_defaults(self, value, expected: int) -> None:
        assert to_int(value, 99) == expected

    @pytest.mark.parametrize(
        "value,expected",
        [
            (0, 3),
            (100, 12),
            (7.7, 7),
            ("nope", 3),
            (float("inf"), 3),
            (10**400, 12),
            (-(10**400), 3),
            ("1" + "0" * 400, 3),
        ],
    )
    def test__clamp_int__stays_in_bounds(self, value, expected: int) -> None:
        assert clamp_int(value, 3, 12) == expected


class TestSanitizeSearchText:
    """Tests for sanitize_search_text."""

    def test__markdown_and_html__are_stripped(self) -> None:
        raw = "# Title\n![logo](http://x/img.png) See [the docs](https://docs.python.org) <b>bold</b> `code`"

        assert sanitize_search_text(raw) == "Title logo See the docs bold"

    def test__fenced_code_and_bare_urls__are_removed(self) -> None:
        raw = "before ```python\nprint('x')\n``` after https://example.com/path?q=1 end"

        assert sanitize_search_text(raw) == "before after end"

    def test__long_text__is_capped_with_ellipsis(self) -> None:
        cleaned = sanitize_search_text("가" * 1000)

        assert len(cleaned) == SNIPPET_MAX_LENGTH
        assert cleaned.endswith("…")

    @pytest.mark.parametrize("value", [None, "", "   ", "```only code```", 42])
    def test__empty_or_non_text__returns_empty(self, value) -> None:
        assert sanitize_search_text(value) == ""

    def test__ellipsize__leaves_short_text(self) -> None:
        assert ellipsize("short", 10) == "short"


class TestSimilarity:
    """Tests for bigram Dice similarity."""

    def test__identical_text__scores_one(self) -> None:
        assert dice_similarity("웹검색을 실행합니다", "웹검색을 실행합니다") == 1.0

    def test__similarity__is_symmetric(self) -> None:
        a = "검색 결과를 검토하고 있습니다"
        b = "검색 결과를 정리하고 있습니다"

        assert dice_similarity(a, b) == dice_similarity(b, a)

    def test__punctuation_only__scores_zero(self) -> None:
        assert to_bigrams("?!...") == []
        assert dice_similarity("?!...", "?!...") == 0.0

    def test__single_character__is_its_own_bigram(self) -> None:
        assert to_bigrams("A") == ["a"]

    def test__urls_and_case__are_ignored(self) -> None:
        assert dice_similarity("Hello World https://a.com", "hello world") == 1.0

    def test__near_duplicate__only_checks_recent_window(self) -> None:
        history = ["질문 의도를 정리하고 있습니다."] + [f"다른 문장 {i}번 입니다" for i in range(6)]

        assert not is_near_duplicate("질문 의도를 정리하고 있습니다.", history)
        assert is_near_duplicate("질문 의도를 정리하고 있습니다.", history[:3])


class TestExtractFirstJsonObject:
    """Tests for extract_first_json_object."""

    def test__plain_json__parses(self) -> None:
        assert extract_first_json_object('{"a": 1}') == {"a": 1}

    def test__fenced_json__parses(self) -> None:
        assert extract_first_json_object('Here:\n```json\n{"queries": ["x"]}\n```') == {"queries": ["x"]}

    def test__json_embedded_in_prose__parses(self) -> None:
        text = 'Sure! {"shouldSearch": true, "mode": "single"} hope this helps'

        assert extract_first_json_object(text) == {"shouldSearch": True, "mode": "single"}

    @pytest.mark.parametrize("text", [None, "", "no json here", "{broken", "{not: valid}"])
    def test__unparseable__returns_none(self, text) -> None:
        assert extract_first_json_object(text) is None


class TestQueryHelpers:
    """Tests for query list normalization and keywordizing."""

    def test__normalize_query_list__dedupes_case_and_whitespace_insensitively(self) -> None:
        raw = ["  Python  tuple ", "python TUPLE", "", None, 3, "list vs tuple"]

        assert normalize_query_list(raw) == ["Python tuple", "list vs tuple"]

    def test__normalize_query_list__is_idempotent(self) -> None:
        once = normalize_query_list(["a  b", "A B", "c"])

        assert normalize_query_list(once) == once

    def test__normalize_query_list__respects_max(self) -> None:
        assert normalize_query_list(["a", "b", "c", "d"], 2) == ["a", "b"]

    @pytest.mark.parametrize("value", [None, "a string", 12, {"a": 1}, {"a", "b"}, iter(["a"])])
    def test__normalize_query_list__non_lists_become_empty(self, value) -> None:
        assert normalize_query_list(value) == []

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("파이썬 리스트와 튜플의 차이를 알려줘", "파이썬 리스트와 튜플의 차이를"),
            ("최신 FastAPI 버전 찾아줘?", "최신 FastAPI 버전"),
            ("Please tell me the latest Node LTS version.", "the latest Node LTS version"),
            ('"quoted" query', "quoted query"),
        ],
    )
    def test__keywordize_query__drops_polite_endings(self, text: str, expected: str) -> None:
        assert keywordize_query(text) == expected

    def test__keywordize_query__caps_length(self) -> None:
        assert len(keywordize_query("a" * 200)) == 90

    def test__normalize_for_compare__ignores_punctuation_and_case(self) -> None:
        assert normalize_for_compare("What is X?") == normalize_for_compare("what  is x")

    def test__collapse_whitespace__trims_and_collapses(self) -> None:
        assert collapse_whitespace("  a \n\t b  ") == "a b"


class TestSummarizeTopDomains:
    """Tests for summarize_top_domains."""

    def test__unique_hosts__in_first_seen_order(self) -> None:
        urls = [
            ["https://docs.python.org/3/", "https://docs.python.org/2/", "not a url"],
            ["https://realpython.com/x", "https://stackoverflow.com/q/1", "https://example.com"],
        ]

        assert summarize_top_domains(urls) == "docs.python.org, realpython.com, stackoverflow.com"

    def test__no_urls__returns_empty(self) -> None:
        assert summarize_top_domains([[], []]) == ""

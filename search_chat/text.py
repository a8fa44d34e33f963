"""String coercion, snippet sanitizing, similarity and JSON extraction helpers.

Everything here is pure and never raises on odd input: LLM output and search
provider payloads are untrusted, so non-strings coerce to "" and unparseable
numbers fall back to a default.
"""

import json
import math
import re
from collections import Counter
from collections.abc import Iterable
from typing import Any
from urllib.parse import urlparse

SNIPPET_MAX_LENGTH = 420
QUERY_MAX_LENGTH = 90
NEAR_DUPLICATE_THRESHOLD = 0.6
NEAR_DUPLICATE_WINDOW = 6

_MARKDOWN_IMAGE = re.compile(r"!\[([^\]]*)\]\(([^)]+)\)")
_MARKDOWN_LINK = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")
_HTML_TAG = re.compile(r"<[^>]+>")
_FENCED_CODE = re.compile(r"```[\s\S]*?```")
_INLINE_CODE = re.compile(r"`[^`]*`")
_BARE_URL = re.compile(r"\bhttps?://\S+")
_MARKDOWN_PUNCT = re.compile(r"[#*_>|{}\[\]]")
_WHITESPACE = re.compile(r"\s+")
_NON_WORD = re.compile(r"[^0-9a-z가-힣\s]")
_JSON_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)

_QUOTES = re.compile("[“”\"'`]")
_TRAILING_PUNCT = re.compile(r"[?.!]+$")
_POLITE_EN = re.compile(r"\b(please|tell me|show me|help me|can you|could you)\b", re.IGNORECASE)
_POLITE_KO_TAILS = (
    re.compile(r"(알려줘|알려주세요|찾아줘|검색해줘|정리해줘|요약해줘|설명해줘|만들어줘|추천해줘|해줘|해주세요)$"),
    re.compile(r"(해줄래|해줄 수 있어|부탁해)$"),
)


def to_str(value: Any) -> str:
    """Return `value` if it is a string, otherwise an empty string."""
    return value if isinstance(value, str) else ""


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def ellipsize(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return f"{text[: max_length - 1]}…"


def sanitize_search_text(text: Any, max_length: int = SNIPPET_MAX_LENGTH) -> str:
    """Strip markdown, HTML, code and bare URLs from a search snippet and cap its length."""
    cleaned = to_str(text)
    cleaned = _MARKDOWN_IMAGE.sub(r"\1", cleaned)
    cleaned = _MARKDOWN_LINK.sub(r"\1", cleaned)
    cleaned = _HTML_TAG.sub(" ", cleaned)
    # Fenced blocks before inline code, or the inline pattern eats the fences.
    cleaned = _FENCED_CODE.sub(" ", cleaned)
    cleaned = _INLINE_CODE.sub(" ", cleaned)
    cleaned = _BARE_URL.sub(" ", cleaned)
    cleaned = _MARKDOWN_PUNCT.sub(" ", cleaned)
    cleaned = collapse_whitespace(cleaned)
    if not cleaned:
        return ""
    return ellipsize(cleaned, max_length)


def normalize_text_for_similarity(text: Any) -> str:
    lowered = to_str(text).lower()
    lowered = _BARE_URL.sub(" ", lowered)
    lowered = _NON_WORD.sub(" ", lowered)
    return collapse_whitespace(lowered)


def to_bigrams(text: Any) -> list[str]:
    source = normalize_text_for_similarity(text).replace(" ", "")
    if not source:
        return []
    if len(source) == 1:
        return [source]
    return [source[i : i + 2] for i in range(len(source) - 1)]


def dice_similarity(a: Any, b: Any) -> float:
    """Sørensen–Dice coefficient over character bigrams (multiset overlap)."""
    left = to_bigrams(a)
    right = to_bigrams(b)
    if not left or not right:
        return 0.0
    overlap = sum((Counter(left) & Counter(right)).values())
    return (2 * overlap) / (len(left) + len(right))


def is_near_duplicate(
    text: str,
    history: Iterable[str],
    *,
    window: int = NEAR_DUPLICATE_WINDOW,
    threshold: float = NEAR_DUPLICATE_THRESHOLD,
) -> bool:
    recent = list(history)[-window:]
    return any(dice_similarity(previous, text) >= threshold for previous in recent)


def to_int(value: Any, default: int) -> int:
    """Truncate a number-like value to int; `default` for anything non-finite."""
    if isinstance(value, int):
        return int(value)
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    if not math.isfinite(number):
        return default
    return math.trunc(number)


def clamp_int(value: Any, minimum: int, maximum: int) -> int:
    return max(minimum, min(maximum, to_int(value, minimum)))


def extract_first_json_object(text: Any) -> Any:
    """Parse JSON out of noisy LLM output.

    Tries, in order: the whole string, the first fenced code block, and the
    span between the first ``{`` and the last ``}``. Returns None when all fail.
    """
    raw = to_str(text).strip()
    if not raw:
        return None

    try:
        return json.loads(raw)
    except ValueError:
        pass

    fenced = _JSON_FENCE.search(raw)
    if fenced and fenced.group(1):
        try:
            return json.loads(fenced.group(1))
        except ValueError:
            pass

    start = raw.find("{")
    end = raw.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(raw[start : end + 1])
        except ValueError:
            return None

    return None


def normalize_for_compare(text: Any) -> str:
    """Loose comparison key: lowercase, sentence punctuation dropped, whitespace collapsed."""
    return collapse_whitespace(re.sub(r"[?.!,]", " ", to_str(text).lower()))


def dedupe_key(text: str) -> str:
    return collapse_whitespace(text).casefold()


def normalize_query_list(raw_queries: Any, max_queries: int | None = None) -> list[str]:
    """Trim, drop blanks and case/whitespace-insensitive duplicates, keep order."""
    if not isinstance(raw_queries, (list, tuple)):
        return []

    seen: set[str] = set()
    queries: list[str] = []
    for item in raw_queries:
        query = collapse_whitespace(to_str(item))
        if not query:
            continue
        key = dedupe_key(query)
        if key in seen:
            continue
        seen.add(key)
        queries.append(query)

    if max_queries is not None:
        return queries[:max_queries]
    return queries


def keywordize_query(text: Any, max_length: int = QUERY_MAX_LENGTH) -> str:
    """Turn a polite request sentence into a keyword-style search phrase."""
    query = collapse_whitespace(_QUOTES.sub("", to_str(text)))
    query = _TRAILING_PUNCT.sub("", query).strip()
    query = collapse_whitespace(_POLITE_EN.sub(" ", query))
    for pattern in _POLITE_KO_TAILS:
        query = pattern.sub("", query).strip()
    query = collapse_whitespace(query)
    if not query:
        return ""
    return query[:max_length].strip()


def summarize_top_domains(hosts_by_entry: Iterable[Iterable[str]], limit: int = 3) -> str:
    """Comma-joined unique hostnames, in first-seen order, from nested URL lists."""
    domains: list[str] = []
    for urls in hosts_by_entry:
        for url in urls:
            try:
                host = urlparse(url).hostname
            except ValueError:
                host = None
            if host and host not in domains:
                domains.append(host)
            if len(domains) >= limit:
                return ", ".join(domains)
    return ", ".join(domains)

"""Tests for plan normalization and the heuristic planner."""

import pytest

from search_chat.models import SearchMode
from search_chat.planning import (
    DECISION_FALLBACK_REASON,
    PLAN_FALLBACK_REASON,
    build_follow_up_fallback,
    build_heuristic_plan,
    enforce_query_quality,
    fallback_second_search_decision,
    normalize_follow_up_questions,
    normalize_search_plan,
    normalize_second_search_decision,
)

ODD_INPUTS = [
    None,
    42,
    "text",
    [],
    ["a"],
    {},
    {"shouldSearch": "yes"},
    {"mode": 7, "primaryQueries": "q"},
    {"shouldSearch": True, "primaryQueries": {"q": 1}},
    {"shouldSearch": True, "mode": "single", "primaryQueries": ["q"], "primaryResultCount": 10**400},
]


class TestNormalizeSearchPlan:
    """Tests for normalize_search_plan."""

    @pytest.mark.parametrize("raw", ODD_INPUTS)
    def test__any_input__yields_consistent_plan(self, raw) -> None:
        plan = normalize_search_plan(raw, "2024년 최저임금이 얼마야?")

        assert (plan.mode is SearchMode.NONE) == (not plan.should_search)
        assert 3 <= plan.primary_result_count <= 12
        assert plan.reason
        if plan.mode is SearchMode.SINGLE:
            assert len(plan.primary_queries) == 1
        if plan.mode is SearchMode.MULTI:
            assert 2 <= len(plan.primary_queries) <= 3

    def test__non_dict__searches_the_user_query(self) -> None:
        plan = normalize_search_plan(None, "  2024년   최저임금이 얼마야? ")

        assert plan.should_search is True
        assert plan.mode is SearchMode.SINGLE
        assert plan.primary_queries == ["2024년 최저임금이 얼마야?"]
        assert plan.primary_result_count == 5
        assert plan.reason == PLAN_FALLBACK_REASON

    def test__non_dict_with_blank_query__does_not_search(self) -> None:
        plan = normalize_search_plan("garbage", "   ")

        assert plan.should_search is False
        assert plan.mode is SearchMode.NONE
        assert plan.primary_queries == []

    def test__should_search_false__clears_queries(self) -> None:
        raw = {"shouldSearch": False, "mode": "multi", "primaryQueries": ["a", "b"], "reason": "pure writing"}

        plan = normalize_search_plan(raw, "시를 써줘")

        assert plan.mode is SearchMode.NONE
        assert plan.primary_queries == []
        assert plan.reason == "pure writing"

    def test__multi_with_single_query__downgrades_to_single(self) -> None:
        raw = {"shouldSearch": True, "mode": "multi", "primaryQueries": ["only one", "ONLY  one"]}

        plan = normalize_search_plan(raw, "q")

        assert plan.mode is SearchMode.SINGLE
        assert plan.primary_queries == ["only one"]

    def test__multi__caps_queries_at_three(self) -> None:
        raw = {"shouldSearch": True, "mode": "multi", "primaryQueries": ["a", "b", "c", "d"], "primaryResultCount": 4}

        plan = normalize_search_plan(raw, "q")

        assert plan.mode is SearchMode.MULTI
        assert plan.primary_queries == ["a", "b", "c"]
        assert plan.primary_result_count == 4

    def test__single__keeps_first_query(self) -> None:
        raw = {"shouldSearch": True, "mode": "single", "primaryQueries": ["first", "second"]}

        assert normalize_search_plan(raw, "q").primary_queries == ["first"]

    def test__should_search_without_queries__uses_user_query(self) -> None:
        raw = {"shouldSearch": True, "mode": "single", "primaryQueries": []}

        assert normalize_search_plan(raw, "최신 파이썬 버전").primary_queries == ["최신 파이썬 버전"]

    @pytest.mark.parametrize("count,expected", [(0, 3), (50, 12), ("7", 7), (None, 5), (6.9, 6), (10**400, 12)])
    def test__result_count__is_clamped(self, count, expected: int) -> None:
        raw = {"shouldSearch": True, "mode": "single", "primaryQueries": ["q"], "primaryResultCount": count}

        assert normalize_search_plan(raw, "q").primary_result_count == expected

    def test__result_count_alias__is_accepted(self) -> None:
        raw = {"shouldSearch": True, "mode": "single", "primaryQueries": ["q"], "primaryMaxResults": 9}

        assert normalize_search_plan(raw, "q").primary_result_count == 9

    def test__no_search_plan__still_reports_valid_count(self) -> None:
        plan = normalize_search_plan({"shouldSearch": False}, "q")

        assert plan.primary_result_count == 5


class TestNormalizeSecondSearchDecision:
    """Tests for normalize_second_search_decision."""

    @pytest.mark.parametrize("raw", [None, "x", [], {}])
    def test__odd_input__returns_fallback(self, raw) -> None:
        assert normalize_second_search_decision(raw) == fallback_second_search_decision()

    def test__needs_more__clamps_count_and_caps_queries(self) -> None:
        raw = {"needsMore": True, "refinedQueries": ["a", "b", "c"], "additionalResultCount": 100, "reason": "gap"}

        decision = normalize_second_search_decision(raw)

        assert decision.needs_more is True
        assert decision.refined_queries == ["a", "b"]
        assert decision.additional_result_count == 15
        assert decision.reason == "gap"

    def test__needs_more_without_queries__becomes_false(self) -> None:
        decision = normalize_second_search_decision({"needsMore": True, "refinedQueries": []})

        assert decision.needs_more is False
        assert decision.additional_result_count == 0
        assert decision.reason == DECISION_FALLBACK_REASON

    def test__needs_more_false__clears_queries(self) -> None:
        decision = normalize_second_search_decision({"needsMore": False, "refinedQueries": ["a"], "reason": "ok"})

        assert decision.refined_queries == []
        assert decision.additional_result_count == 0

    def test__single_refined_query_string__is_accepted(self) -> None:
        decision = normalize_second_search_decision({"needsMore": True, "refinedQuery": "2024 최저임금 시급"})

        assert decision.refined_queries == ["2024 최저임금 시급"]
        assert decision.additional_result_count == 10

    def test__refined_queries__truncated_to_90_chars(self) -> None:
        decision = normalize_second_search_decision({"needsMore": True, "refinedQueries": ["x" * 200]})

        assert decision.refined_queries == ["x" * 90]

    def test__low_count__raised_to_minimum(self) -> None:
        raw = {"needsMore": True, "refinedQueries": ["a"], "additionalResultCount": 1}

        assert normalize_second_search_decision(raw).additional_result_count == 5

    def test__huge_count__clamped_to_maximum(self) -> None:
        raw = {"needsMore": True, "refinedQueries": ["a"], "additionalResultCount": 10**400}

        assert normalize_second_search_decision(raw).additional_result_count == 15

    def test__refined_queries_mapping__is_ignored(self) -> None:
        raw = {"needsMore": True, "refinedQueries": {"a": 1}, "additionalResultCount": 10}

        assert normalize_second_search_decision(raw).needs_more is False


class TestHeuristicPlan:
    """Tests for build_heuristic_plan."""

    def test__translation_request__does_not_search(self) -> None:
        query = "이 문장 번역해줘: Hello world"

        plan = normalize_search_plan(build_heuristic_plan(query), query)

        assert plan.should_search is False
        assert plan.mode is SearchMode.NONE
        assert plan.primary_queries == []

    def test__factual_question__searches_single(self) -> None:
        raw = build_heuristic_plan("2024년 최저임금이 얼마야?")

        assert raw["shouldSearch"] is True
        assert raw["mode"] == "single"
        assert raw["primaryQueries"] == ["2024년 최저임금이 얼마야?"]

    def test__comparison__is_multi_hint(self) -> None:
        raw = build_heuristic_plan("파이썬 리스트와 튜플의 차이를 알려줘")

        assert raw["mode"] == "multi"
        assert raw["primaryResultCount"] == 4

    def test__comparison_after_normalizing__collapses_to_single(self) -> None:
        query = "파이썬 리스트와 튜플의 차이를 알려줘"

        plan = normalize_search_plan(build_heuristic_plan(query), query)

        assert plan.mode is SearchMode.SINGLE
        assert plan.primary_queries == [query]

    def test__editorial_with_freshness_hint__still_searches(self) -> None:
        assert build_heuristic_plan("최신 뉴스 요약해줘")["shouldSearch"] is True

    def test__empty_query__does_not_search(self) -> None:
        assert build_heuristic_plan("   ")["shouldSearch"] is False


class TestEnforceQueryQuality:
    """Tests for enforce_query_quality."""

    def test__polite_sentence__becomes_keywords(self) -> None:
        query = "파이썬 리스트와 튜플의 차이를 알려줘"

        queries = enforce_query_quality([query], query, "primary", 1)

        assert queries == ["파이썬 리스트와 튜플의 차이를"]

    def test__query_equal_to_user_text__gets_primary_suffix(self) -> None:
        queries = enforce_query_quality(["fastapi lifespan"], "FastAPI lifespan", "primary", 1)

        assert queries == ["FastAPI lifespan 최신 정보"]

    def test__followup_mode__uses_followup_suffix(self) -> None:
        queries = enforce_query_quality(["fastapi lifespan"], "fastapi lifespan", "followup", 2)

        assert queries == ["fastapi lifespan 심화"]

    def test__suffixed_query__stays_within_90_chars(self) -> None:
        long_query = "k" * 90

        queries = enforce_query_quality([long_query], long_query, "primary", 1)

        assert len(queries[0]) <= 90
        assert queries[0].endswith("최신 정보")

    def test__respects_max_queries(self) -> None:
        assert len(enforce_query_quality(["a", "b", "c"], "zzz", "primary", 2)) == 2

    def test__non_list__returns_empty(self) -> None:
        assert enforce_query_quality(None, "q", "primary", 3) == []


class TestFollowUps:
    """Tests for follow-up question normalization and fallback."""

    def test__fallback__has_three_questions_about_topic(self) -> None:
        questions = build_follow_up_fallback("2024년 최저임금이 얼마야?")

        assert len(questions) == 3
        assert all(q.startswith("2024년 최저임금이 얼마야") for q in questions)
        assert all(q != "2024년 최저임금이 얼마야?" for q in questions)

    def test__fallback__for_blank_query_uses_generic_topic(self) -> None:
        assert build_follow_up_fallback("")[0].startswith("이 주제")

    def test__normalize__drops_duplicates_blanks_and_user_query(self) -> None:
        raw = ["2024년 최저임금이 얼마야?", "  ", "월급으로 환산하면?", "월급으로  환산하면", "내년 인상률은?", "주휴수당 포함?"]

        questions = normalize_follow_up_questions(raw, "2024년 최저임금이 얼마야")

        assert questions == ["월급으로 환산하면?", "내년 인상률은?", "주휴수당 포함?"]

    def test__normalize__non_list_returns_empty(self) -> None:
        assert normalize_follow_up_questions({"questions": ["a"]}, "q") == []

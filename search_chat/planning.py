"""Search plan normalization and the regex heuristic planner.

The normalizers are the seam between untrusted LLM JSON and the rest of the
pipeline: they accept anything and always return a valid model.
"""

import re
from typing import Any

from search_chat.models import SearchMode, SearchPlan, SecondSearchDecision
from search_chat.text import (
    QUERY_MAX_LENGTH,
    clamp_int,
    collapse_whitespace,
    keywordize_query,
    normalize_for_compare,
    normalize_query_list,
    to_str,
)

PRIMARY_MIN_RESULTS = 3
PRIMARY_MAX_RESULTS = 12
PRIMARY_DEFAULT_SINGLE = 5
PRIMARY_DEFAULT_MULTI = 4

FOLLOWUP_MIN_RESULTS = 5
FOLLOWUP_MAX_RESULTS = 15
FOLLOWUP_DEFAULT_RESULTS = 10

MAX_PRIMARY_QUERIES = 3
MAX_REFINED_QUERIES = 2
MAX_FOLLOW_UP_QUESTIONS = 3

PLAN_FALLBACK_REASON = "Planner fallback: use internal reasoning only."
DECISION_FALLBACK_REASON = "Follow-up search not required."

NO_SEARCH_HINTS = (
    re.compile(r"translate|translation|proofread|rewrite|summarize|summarise|paraphrase", re.IGNORECASE),
    re.compile(r"번역|요약|교정|맞춤법|문장 다듬"),
    re.compile(r"write a poem|story|creative writing|brainstorm names", re.IGNORECASE),
    re.compile(r"시를 써|소설 써|창작|아이디어만"),
)

SEARCH_HINTS = (
    re.compile(r"latest|today|current|news|price|stock|release|version|update|official docs?", re.IGNORECASE),
    re.compile(r"recommend|comparison|compare|vs|best|top \d+", re.IGNORECASE),
    re.compile(r"최신|오늘|현재|뉴스|가격|주가|환율|업데이트|버전|공식 문서|추천|비교|리뷰"),
    re.compile(r"설치|세팅|가이드|준비물|requirements|prerequisite", re.IGNORECASE),
)

MULTI_TOPIC_HINT = re.compile(r"\b(vs|versus|compare|comparison)\b|비교|차이|장단점|및|그리고", re.IGNORECASE)
_TRAILING_PUNCT = re.compile(r"[?.!]+$")

OPTIMIZED_QUERY_SUFFIX = {"primary": " 최신 정보", "followup": " 심화"}


def _first_present(raw: dict[str, Any], *keys: str, default: Any) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return default


def normalize_search_plan(raw: Any, user_query: Any) -> SearchPlan:
    """Coerce planner output (or anything else) into a consistent SearchPlan."""
    safe_query = collapse_whitespace(to_str(user_query))

    if not isinstance(raw, dict):
        return _plan(
            should_search=bool(safe_query),
            mode=SearchMode.SINGLE if safe_query else SearchMode.NONE,
            queries=[safe_query] if safe_query else [],
            result_count=PRIMARY_DEFAULT_SINGLE,
            reason="",
        )

    should_search = bool(raw.get("shouldSearch"))
    try:
        mode = SearchMode(raw.get("mode"))
    except ValueError:
        mode = SearchMode.SINGLE if should_search else SearchMode.NONE

    queries = normalize_query_list(raw.get("primaryQueries"))
    if should_search and not queries and safe_query:
        queries = [safe_query]

    if not should_search:
        mode = SearchMode.NONE
        queries = []

    if mode is SearchMode.MULTI:
        queries = queries[:MAX_PRIMARY_QUERIES]
        if len(queries) <= 1:
            mode = SearchMode.SINGLE
    else:
        queries = queries[:1]
        if should_search:
            mode = SearchMode.SINGLE

    if not queries:
        should_search = False
        mode = SearchMode.NONE

    default_count = PRIMARY_DEFAULT_MULTI if mode is SearchMode.MULTI else PRIMARY_DEFAULT_SINGLE
    result_count = _first_present(raw, "primaryResultCount", "primaryMaxResults", "resultCount", default=default_count)

    return _plan(
        should_search=should_search,
        mode=mode,
        queries=queries,
        result_count=result_count,
        reason=to_str(raw.get("reason")).strip(),
    )


def _plan(*, should_search: bool, mode: SearchMode, queries: list[str], result_count: Any, reason: str) -> SearchPlan:
    return SearchPlan(
        should_search=should_search,
        mode=mode,
        primary_queries=queries,
        primary_result_count=clamp_int(result_count, PRIMARY_MIN_RESULTS, PRIMARY_MAX_RESULTS),
        reason=reason or PLAN_FALLBACK_REASON,
    )


def fallback_second_search_decision() -> SecondSearchDecision:
    return SecondSearchDecision(
        needs_more=False,
        refined_queries=[],
        additional_result_count=0,
        reason=DECISION_FALLBACK_REASON,
    )


def normalize_second_search_decision(raw: Any) -> SecondSearchDecision:
    """Coerce completeness-check output into a SecondSearchDecision."""
    if not isinstance(raw, dict):
        return fallback_second_search_decision()

    candidates = raw.get("refinedQueries")
    if not isinstance(candidates, list):
        single = to_str(raw.get("refinedQuery")).strip()
        candidates = [single] if single else []

    queries = [query[:QUERY_MAX_LENGTH].strip() for query in normalize_query_list(candidates)]
    queries = normalize_query_list(queries, MAX_REFINED_QUERIES)
    needs_more = bool(raw.get("needsMore")) and bool(queries)

    additional = 0
    if needs_more:
        requested = _first_present(
            raw,
            "additionalResultCount",
            "additionalMaxResults",
            "maxResults",
            "resultCount",
            default=FOLLOWUP_DEFAULT_RESULTS,
        )
        additional = clamp_int(requested, FOLLOWUP_MIN_RESULTS, FOLLOWUP_MAX_RESULTS)

    return SecondSearchDecision(
        needs_more=needs_more,
        refined_queries=queries if needs_more else [],
        additional_result_count=additional,
        reason=to_str(raw.get("reason")).strip() or DECISION_FALLBACK_REASON,
    )


def build_heuristic_plan(user_query: Any) -> dict[str, Any]:
    """Regex fallback for the planner. Output is raw and still needs normalizing."""
    query = collapse_whitespace(to_str(user_query))
    if not query:
        return {"shouldSearch": False, "mode": "none", "primaryQueries": [], "reason": "Empty query."}

    looks_editorial = any(pattern.search(query) for pattern in NO_SEARCH_HINTS)
    looks_factual = any(pattern.search(query) for pattern in SEARCH_HINTS)

    if looks_editorial and not looks_factual:
        return {
            "shouldSearch": False,
            "mode": "none",
            "primaryQueries": [],
            "reason": "Heuristic: pure writing/editing request.",
        }

    multi = bool(MULTI_TOPIC_HINT.search(query))
    return {
        "shouldSearch": True,
        "mode": "multi" if multi else "single",
        "primaryQueries": [query],
        "primaryResultCount": PRIMARY_DEFAULT_MULTI if multi else PRIMARY_DEFAULT_SINGLE,
        "reason": (
            "Heuristic: likely multi-topic factual request."
            if multi
            else "Heuristic: factual/procedural request; search recommended."
        ),
    }


def enforce_query_quality(queries: Any, user_query: Any, mode: str, max_queries: int) -> list[str]:
    """Keywordize, cap at 90 chars and make sure no query is the user's raw sentence."""
    source = normalize_query_list(queries, max_queries)
    user_key = normalize_for_compare(user_query)
    suffix = OPTIMIZED_QUERY_SUFFIX.get(mode, OPTIMIZED_QUERY_SUFFIX["primary"])

    adjusted: list[str] = []
    for query in source:
        candidate = keywordize_query(query) or query
        if normalize_for_compare(candidate) == user_key:
            base = keywordize_query(user_query) or candidate
            if normalize_for_compare(base) != user_key:
                candidate = base
            else:
                candidate = f"{base[: QUERY_MAX_LENGTH - len(suffix)]}{suffix}".strip()
        adjusted.append(candidate[:QUERY_MAX_LENGTH].strip())

    return normalize_query_list(adjusted, max_queries)


def build_follow_up_fallback(user_query: Any) -> list[str]:
    topic = _TRAILING_PUNCT.sub("", collapse_whitespace(to_str(user_query)))
    topic = (topic or "이 주제")[:36]
    return [
        f"{topic}를 단계별 실행 체크리스트로 정리해줘.",
        f"{topic}에서 우선순위 높은 작업 5가지만 뽑아줘.",
        f"{topic} 진행 중 자주 막히는 지점과 해결법 알려줘.",
    ]


def normalize_follow_up_questions(raw_questions: Any, user_query: Any) -> list[str]:
    """Keep up to 3 distinct, non-blank questions that differ from the user query."""
    if not isinstance(raw_questions, list):
        return []

    user_key = normalize_for_compare(user_query)
    seen: set[str] = set()
    questions: list[str] = []
    for item in raw_questions:
        question = collapse_whitespace(to_str(item))
        key = normalize_for_compare(question)
        if not key or key == user_key or key in seen:
            continue
        seen.add(key)
        questions.append(question)

    return questions[:MAX_FOLLOW_UP_QUESTIONS]

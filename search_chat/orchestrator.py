"""Search orchestration: plan, optimize queries, fan out searches, judge completeness.

Every LLM-backed step has a deterministic fallback; provider failures are
logged and absorbed here so the turn always proceeds.
"""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from search_chat.events import ChatEventType, SSEEvent
from search_chat.exceptions import ProviderError
from search_chat.llm import LLMClient
from search_chat.logging import get_logger
from search_chat.models import (
    ChatMessage,
    SearchErrorPayload,
    SearchMode,
    SearchPlan,
    SearchRoundEntry,
    SecondSearchDecision,
)
from search_chat.planning import (
    MAX_PRIMARY_QUERIES,
    MAX_REFINED_QUERIES,
    build_follow_up_fallback,
    build_heuristic_plan,
    enforce_query_quality,
    fallback_second_search_decision,
    normalize_follow_up_questions,
    normalize_search_plan,
    normalize_second_search_decision,
)
from search_chat.prompts import (
    completeness_messages,
    follow_up_messages,
    optimizer_messages,
    planner_messages,
)
from search_chat.search import TavilySearchClient
from search_chat.text import collapse_whitespace, normalize_query_list, to_str

log = get_logger("search_chat.orchestrator")

EventCallback = Callable[[SSEEvent], Awaitable[None]]

PLAN_TIMEOUT_S = 9.0
PLAN_MAX_TOKENS = 260
OPTIMIZER_TIMEOUT_S = 8.0
OPTIMIZER_MAX_TOKENS = 220
COMPLETENESS_TIMEOUT_S = 9.0
COMPLETENESS_MAX_TOKENS = 220
FOLLOW_UPS_TIMEOUT_S = 4.5
FOLLOW_UPS_MAX_TOKENS = 160
FOLLOW_UPS_TEMPERATURE = 0.35
ANSWER_SUMMARY_CHARS = 900


class SearchOrchestrator:
    """Decision making around web search for a single chat turn.

    Holds the two provider clients; keeps no per-turn state.
    """

    def __init__(self, llm: LLMClient, search: TavilySearchClient) -> None:
        self.llm = llm
        self.search = search

    async def build_initial_plan(self, user_query: str, messages: Sequence[ChatMessage]) -> SearchPlan:
        """Heuristic plan, refined by the LLM planner when credentials exist."""
        heuristic = normalize_search_plan(build_heuristic_plan(user_query), user_query)
        if not self.llm.enabled:
            return heuristic

        try:
            raw = await self.llm.request_structured(
                planner_messages(user_query, messages),
                timeout_s=PLAN_TIMEOUT_S,
                max_tokens=PLAN_MAX_TOKENS,
            )
        except ProviderError as e:
            log.warning("chat.plan.llm_failed", error=str(e))
            return heuristic

        plan = normalize_search_plan(raw, user_query)
        if not plan.primary_queries and heuristic.primary_queries:
            log.info("chat.plan.heuristic_spliced", queries=heuristic.primary_queries)
            return plan.model_copy(
                update={
                    "should_search": heuristic.should_search,
                    "mode": heuristic.mode,
                    "primary_queries": heuristic.primary_queries,
                    "primary_result_count": heuristic.primary_result_count,
                }
            )
        return plan

    async def optimize_queries(
        self,
        user_query: str,
        queries: Sequence[str],
        *,
        mode: str = "primary",
        max_queries: int = MAX_PRIMARY_QUERIES,
    ) -> list[str]:
        """Rewrite queries into keyword-style search phrases."""
        candidates = normalize_query_list(queries, max_queries)
        fallback = enforce_query_quality(candidates, user_query, mode, max_queries)
        if not candidates or not self.llm.enabled:
            return fallback

        try:
            raw = await self.llm.request_structured(
                optimizer_messages(user_query, candidates, mode, max_queries),
                timeout_s=OPTIMIZER_TIMEOUT_S,
                max_tokens=OPTIMIZER_MAX_TOKENS,
            )
        except ProviderError as e:
            log.warning("chat.optimize.llm_failed", mode=mode, error=str(e))
            return fallback

        rewritten = raw.get("queries") if isinstance(raw, dict) else None
        optimized = enforce_query_quality(rewritten, user_query, mode, max_queries)
        return optimized or fallback

    async def optimize_plan(self, user_query: str, plan: SearchPlan) -> SearchPlan:
        if not plan.should_search or not plan.primary_queries:
            return plan
        max_queries = MAX_PRIMARY_QUERIES if plan.mode is SearchMode.MULTI else 1
        optimized = await self.optimize_queries(
            user_query, plan.primary_queries, mode="primary", max_queries=max_queries
        )
        if not optimized:
            return plan
        return plan.model_copy(update={"primary_queries": optimized})

    async def decide_second_search(
        self,
        user_query: str,
        plan: SearchPlan,
        entries: Sequence[SearchRoundEntry],
    ) -> SecondSearchDecision:
        """Ask whether round 1 left factual gaps; refined queries come back optimized."""
        if not self.llm.enabled or not entries:
            return fallback_second_search_decision()

        try:
            raw = await self.llm.request_structured(
                completeness_messages(user_query, plan, entries),
                timeout_s=COMPLETENESS_TIMEOUT_S,
                max_tokens=COMPLETENESS_MAX_TOKENS,
            )
        except ProviderError as e:
            log.warning("chat.decision.llm_failed", error=str(e))
            return fallback_second_search_decision()

        decision = normalize_second_search_decision(raw)
        if not decision.needs_more:
            return decision

        refined = await self.optimize_queries(
            user_query, decision.refined_queries, mode="followup", max_queries=MAX_REFINED_QUERIES
        )
        if refined:
            decision = decision.model_copy(update={"refined_queries": refined})
        return decision

    async def run_search_batch(
        self,
        queries: Sequence[str],
        *,
        round: int,
        max_results: int,
        event_callback: EventCallback,
    ) -> list[SearchRoundEntry]:
        """Search every query concurrently; one failure never cancels its siblings.

        Emits a ``search`` event per success and a ``search_error`` event per
        failure, in query order, and returns the successful entries.
        """
        unique: list[str] = []
        for query in queries:
            query = to_str(query).strip()
            if query and query not in unique:
                unique.append(query)
        if not unique:
            return []

        outcomes = await asyncio.gather(
            *(self.search.search(query, max_results) for query in unique),
            return_exceptions=True,
        )

        entries: list[SearchRoundEntry] = []
        for query, outcome in zip(unique, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                log.warning("chat.search.query_failed", round=round, query=query, error=str(outcome))
                payload = SearchErrorPayload(round=round, query=query, error=str(outcome) or "Search failed")
                await event_callback(SSEEvent(type=ChatEventType.SEARCH_ERROR, data=payload))
                continue

            entry = SearchRoundEntry(
                round=round,
                query=query,
                max_results=max_results,
                answer=outcome.answer,
                results=outcome.results,
            )
            entries.append(entry)
            await event_callback(SSEEvent(type=ChatEventType.SEARCH, data=entry))

        log.info("chat.search.round_complete", round=round, queries=len(unique), succeeded=len(entries))
        return entries

    async def generate_follow_ups(self, user_query: str, answer_text: str) -> list[str]:
        """Three suggested next questions, never equal to the user query."""
        fallback = build_follow_up_fallback(user_query)
        if not self.llm.enabled:
            return fallback

        summary = collapse_whitespace(to_str(answer_text))[:ANSWER_SUMMARY_CHARS]
        try:
            raw: Any = await self.llm.request_structured(
                follow_up_messages(user_query, summary),
                timeout_s=FOLLOW_UPS_TIMEOUT_S,
                max_tokens=FOLLOW_UPS_MAX_TOKENS,
                temperature=FOLLOW_UPS_TEMPERATURE,
            )
        except ProviderError as e:
            log.info("chat.follow_ups.llm_failed", error=str(e))
            return fallback

        questions = normalize_follow_up_questions(raw.get("questions") if isinstance(raw, dict) else None, user_query)
        return questions or fallback

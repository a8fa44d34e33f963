"""Thinking-panel narration: one short Korean sentence per pipeline stage.

Every line comes from the orchestrator model when credentials are present and
from canned per-stage templates otherwise, so narration never blocks or fails
the turn.
"""

import re
from collections import deque
from dataclasses import dataclass, field
from typing import Any

from search_chat.exceptions import ProviderError
from search_chat.llm import LLMClient
from search_chat.logging import get_logger
from search_chat.models import SearchPlan, SecondSearchDecision
from search_chat.prompts import intro_messages, narration_messages
from search_chat.text import collapse_whitespace, is_near_duplicate, keywordize_query, to_str

log = get_logger("search_chat.narration")

NARRATION_TIMEOUT_S = 7.0
NARRATION_MAX_TOKENS = 90
NARRATION_TEMPERATURE = 0.25
INTRO_TIMEOUT_S = 8.0
INTRO_MAX_TOKENS = 220
INTRO_MAX_LINES = 7
HISTORY_SIZE = 12
PREVIOUS_LINES_IN_PROMPT = 4

_CODE_FENCE = re.compile(r"```[\s\S]*?```")
_BULLET_LINE = re.compile(r"^-\s", re.MULTILINE)


@dataclass
class NarrationContext:
    """Facts a narration line may mention. Unset fields stay out of the prompt."""

    plan: SearchPlan | None = None
    decision: SecondSearchDecision | None = None
    source_count: int | None = None
    max_results: int | None = None
    domains_text: str = ""
    round: int | None = None
    error: str = ""
    previous_lines: list[str] = field(default_factory=list)


@dataclass
class NarrationState:
    """Per-turn narration memory: recent lines and stage keys already narrated."""

    history: deque[str] = field(default_factory=lambda: deque(maxlen=HISTORY_SIZE))
    emitted_keys: set[str] = field(default_factory=set)


def build_thinking_fallback(stage: str, ctx: NarrationContext | None = None) -> str:
    ctx = ctx or NarrationContext()
    should_search = bool(ctx.plan and ctx.plan.should_search)

    if stage == "analyze_intent":
        return "질문의 핵심 의도를 먼저 정리하고 있습니다."
    if stage == "decide_search":
        if should_search:
            return "정확한 답변을 위해 최신 정보를 확인할 웹검색이 필요하다고 판단했습니다."
        return "웹검색 없이도 답변 가능한 요청으로 판단했습니다."
    if stage == "plan_queries":
        if should_search:
            return "검색에 사용할 쿼리와 확인 순서를 정리하고 있습니다."
        return "검색 단계는 건너뛰고 답변 준비로 바로 넘어갑니다."
    if stage == "searching":
        return "신뢰 가능한 근거를 확보하기 위해 웹검색을 실행하고 있습니다."
    if stage == "search_results":
        domains = ctx.domains_text or "핵심 도메인"
        return f"웹검색 결과에서 출처 {ctx.source_count or 0}개를 확보했고 {domains}를 우선 검토하겠습니다."
    if stage == "analyzing":
        return "검색 결과를 검토해 누락 정보와 신뢰도를 확인하고 있습니다."
    if stage == "searching_2":
        return "누락 정보를 보강하기 위해 추가 웹검색을 실행하고 있습니다."
    if stage == "synthesize":
        return "검색 결과를 바탕으로 답변을 정리하고 있습니다."
    if stage == "thinking":
        return "답변 초안을 마무리하고 곧 전달하겠습니다."
    if stage == "error":
        return f"진행 중 오류가 발생했습니다: {ctx.error or '알 수 없는 오류'}"
    return "응답 준비를 진행하고 있습니다."


def build_fact_sheet(stage: str, user_query: str, ctx: NarrationContext) -> str:
    lines = [f"stage: {stage}", f"user_query: {to_str(user_query)[:240]}"]

    if ctx.plan is not None:
        lines += [
            f"search_should: {str(ctx.plan.should_search).lower()}",
            f"search_mode: {ctx.plan.mode.value}",
            f"primary_result_count: {ctx.plan.primary_result_count}",
            f"search_reason: {ctx.plan.reason[:200]}",
            f"primary_queries: {' | '.join(ctx.plan.primary_queries)[:240]}",
        ]
    if ctx.decision is not None:
        lines += [
            f"needs_more: {str(ctx.decision.needs_more).lower()}",
            f"additional_result_count: {ctx.decision.additional_result_count}",
            f"decision_reason: {ctx.decision.reason[:200]}",
        ]
    if ctx.source_count is not None:
        lines.append(f"source_count: {ctx.source_count}")
    if ctx.max_results is not None:
        lines.append(f"max_results_per_query: {ctx.max_results}")
    if ctx.domains_text:
        lines.append(f"top_domains: {ctx.domains_text}")
    if ctx.previous_lines:
        lines.append(f"previous_lines: {' || '.join(ctx.previous_lines[-PREVIOUS_LINES_IN_PROMPT:])}")
    if ctx.round:
        lines.append(f"round: {ctx.round}")
    if ctx.error:
        lines.append(f"error: {ctx.error[:200]}")

    return "\n".join(lines)


def _strip_fences(raw: str) -> list[str]:
    cleaned = _CODE_FENCE.sub("", to_str(raw))
    return [line.strip() for line in cleaned.split("\n") if line.strip()]


def build_intro_fallback(user_query: str, plan: SearchPlan) -> str:
    topic = keywordize_query(user_query) or collapse_whitespace(to_str(user_query)) or "현재 질문"
    topic = topic[:56].strip()

    if plan.should_search:
        steps = [
            "- 질문 범위와 필요한 정보 정리",
            "- 항목별 최신 정보 웹검색",
            "- 검색 근거를 바탕으로 답변 작성",
        ]
        closing = "우선 웹검색으로 최신 정보를 확인하겠습니다."
    else:
        steps = [
            "- 요청 의도와 답변 범위 정리",
            "- 핵심 개념별 설명 흐름 설계",
            "- 바로 활용 가능한 답변 작성",
        ]
        closing = "검색 없이 보유 지식을 바탕으로 답변을 준비하겠습니다."

    return "\n".join(
        [f"{topic} 관련 답변을 요청하셨습니다.", "답변을 위해 아래 순서로 진행하겠습니다.", *steps, closing]
    )


class NarrationEngine:
    """Produces thinking-panel lines and the initial plan summary."""

    def __init__(self, llm: LLMClient) -> None:
        self.llm = llm

    async def narrate(self, stage: str, user_query: str, context: NarrationContext | None = None) -> str:
        ctx = context or NarrationContext()
        fallback = build_thinking_fallback(stage, ctx)
        if not self.llm.enabled:
            return fallback

        try:
            raw = await self.llm.request_text(
                narration_messages(build_fact_sheet(stage, user_query, ctx)),
                timeout_s=NARRATION_TIMEOUT_S,
                max_tokens=NARRATION_MAX_TOKENS,
                temperature=NARRATION_TEMPERATURE,
            )
        except ProviderError as e:
            log.info("narration.llm_failed", stage=stage, error=str(e))
            return fallback

        lines = _strip_fences(raw)
        return lines[0] if lines else fallback

    async def compose_intro(self, user_query: str, plan: SearchPlan) -> str:
        """5-7 line plan summary; must contain a ``- `` bullet or the template is used."""
        fallback = build_intro_fallback(user_query, plan)
        if not self.llm.enabled:
            return fallback

        try:
            raw = await self.llm.request_text(
                intro_messages(user_query, plan),
                timeout_s=INTRO_TIMEOUT_S,
                max_tokens=INTRO_MAX_TOKENS,
                temperature=NARRATION_TEMPERATURE,
            )
        except ProviderError as e:
            log.info("narration.intro_failed", error=str(e))
            return fallback

        intro = "\n".join(_strip_fences(raw)[:INTRO_MAX_LINES])
        if not intro or not _BULLET_LINE.search(intro):
            return fallback
        return intro

    async def emit(
        self,
        state: NarrationState,
        stage: str,
        user_query: str,
        context: NarrationContext | None = None,
        *,
        stage_key: str | None = None,
    ) -> str | None:
        """Narrate a stage unless its key already spoke or the line repeats a recent one.

        Returns the accepted line (recorded in ``state``) or None when suppressed.
        """
        key = stage_key or stage
        if key in state.emitted_keys:
            return None

        ctx = context or NarrationContext()
        ctx.previous_lines = list(state.history)
        text = await self.narrate(stage, user_query, ctx)
        if not text or is_near_duplicate(text, state.history):
            return None

        state.history.append(text)
        state.emitted_keys.add(key)
        return text

"""Chat turn workflow: plan, search up to two rounds, stream the answer."""

from collections.abc import Awaitable, Callable, Sequence
from time import perf_counter

from search_chat.events import (
    ChatEventType,
    SSEEvent,
    Stage,
    content_event,
    status_event,
    thinking_event,
)
from search_chat.exceptions import InvalidChatRequestError, ProviderError, SearchUnavailableError
from search_chat.llm import iter_content_deltas
from search_chat.logging import get_logger, start_turn
from search_chat.models import ChatMessage, SearchErrorPayload, SearchRoundEntry
from search_chat.narration import NarrationContext, NarrationEngine, NarrationState
from search_chat.orchestrator import SearchOrchestrator
from search_chat.prompts import build_answer_messages
from search_chat.text import summarize_top_domains

log = get_logger("search_chat.workflow")

EventCallback = Callable[[SSEEvent], Awaitable[None]]

STAGE_ORDER: tuple[Stage, ...] = tuple(Stage)
DOMAINS_IN_NARRATION = 4
ROUND_ONE_EMPTY_ERROR = "1차 검색 결과를 확보하지 못했습니다."
ANSWER_UNAVAILABLE_ERROR = "답변 생성 모델에 연결하지 못했습니다."


class StageTracker:
    """Monotonic guard over status events.

    A stage at or below the highest index already emitted is rejected, so the
    client never sees the pipeline move backwards.
    """

    def __init__(self) -> None:
        self._highest = -1

    @property
    def current(self) -> Stage | None:
        return STAGE_ORDER[self._highest] if self._highest >= 0 else None

    def advance(self, stage: Stage) -> bool:
        index = STAGE_ORDER.index(stage)
        if index <= self._highest:
            return False
        self._highest = index
        return True


def validate_messages(messages: Sequence[ChatMessage]) -> str:
    """Return the user query of a chat turn or raise InvalidChatRequestError."""
    if not messages:
        raise InvalidChatRequestError("messages is required")
    if messages[-1].role != "user":
        raise InvalidChatRequestError("last message must be from user")
    return messages[-1].content


def _source_count(entries: Sequence[SearchRoundEntry]) -> int:
    return sum(entry.source_count for entry in entries)


def _domains(entries: Sequence[SearchRoundEntry]) -> str:
    return summarize_top_domains(
        ([hit.url for hit in entry.results] for entry in entries),
        limit=DOMAINS_IN_NARRATION,
    )


async def run_chat_workflow(
    messages: Sequence[ChatMessage],
    *,
    orchestrator: SearchOrchestrator,
    event_callback: EventCallback,
    narrator: NarrationEngine | None = None,
) -> str:
    """Run one chat turn, emitting every SSE event through ``event_callback``.

    Args:
        messages: Whole conversation; the last message must be from the user.
        orchestrator: Planning/search decisions and the provider clients.
        event_callback: Receives events in emission order.
        narrator: Override the default narration engine (for testing).

    Returns:
        The streamed answer text (empty when the answer model was unavailable).

    Raises:
        InvalidChatRequestError: When the conversation is empty or does not end
            with a user turn.
    """
    user_query = validate_messages(messages)
    start_turn()

    narrator = narrator or NarrationEngine(orchestrator.llm)
    tracker = StageTracker()
    state = NarrationState()

    async def set_status(stage: Stage) -> None:
        if tracker.advance(stage):
            await event_callback(status_event(stage))
        else:
            current = tracker.current
            log.debug("chat.status.dropped", stage=stage.value, current=current.value if current else None)

    async def narrate(stage: str, ctx: NarrationContext | None = None, *, key: str | None = None) -> None:
        text = await narrator.emit(state, stage, user_query, ctx, stage_key=key)
        if text:
            await event_callback(thinking_event(text))

    workflow_start = perf_counter()
    log.info("chat.turn.started", turns=len(messages))

    await set_status(Stage.ANALYZE_INTENT)
    await narrate("analyze_intent")

    # Plan
    await set_status(Stage.DECIDE_SEARCH)
    plan = await orchestrator.build_initial_plan(user_query, messages)
    plan = await orchestrator.optimize_plan(user_query, plan)
    log.info("chat.plan.ready", should_search=plan.should_search, mode=plan.mode.value, queries=plan.primary_queries)

    intro = await narrator.compose_intro(user_query, plan)
    if intro:
        await event_callback(SSEEvent(type=ChatEventType.THINKING_INTRO, data=intro))
    await event_callback(SSEEvent(type=ChatEventType.SEARCH_PLAN, data=plan))
    await narrate("decide_search", NarrationContext(plan=plan, max_results=plan.primary_result_count))

    await set_status(Stage.PLAN_QUERIES)

    entries: list[SearchRoundEntry] = []
    if plan.should_search and orchestrator.search.enabled:
        # Round 1
        await set_status(Stage.SEARCHING)
        await narrate("searching", NarrationContext(plan=plan, max_results=plan.primary_result_count))
        first_round = await orchestrator.run_search_batch(
            plan.primary_queries,
            round=1,
            max_results=plan.primary_result_count,
            event_callback=event_callback,
        )
        entries.extend(first_round)
        await narrate(
            "search_results",
            NarrationContext(
                round=1,
                source_count=_source_count(first_round),
                max_results=plan.primary_result_count,
                domains_text=_domains(first_round),
            ),
            key="search_results_round_1",
        )

        if first_round:
            await set_status(Stage.ANALYZING)
            await narrate("analyzing", NarrationContext(plan=plan))
            decision = await orchestrator.decide_second_search(user_query, plan, first_round)
            await event_callback(SSEEvent(type=ChatEventType.SEARCH_DECISION, data=decision))
            await narrate(
                "analyzing",
                NarrationContext(plan=plan, decision=decision, max_results=decision.additional_result_count),
                key="search_decision",
            )

            if decision.needs_more:
                # Round 2
                await set_status(Stage.SEARCHING_2)
                await narrate(
                    "searching_2",
                    NarrationContext(decision=decision, max_results=decision.additional_result_count),
                )
                second_round = await orchestrator.run_search_batch(
                    decision.refined_queries,
                    round=2,
                    max_results=decision.additional_result_count,
                    event_callback=event_callback,
                )
                entries.extend(second_round)
                await narrate(
                    "search_results",
                    NarrationContext(
                        round=2,
                        source_count=_source_count(second_round),
                        max_results=decision.additional_result_count,
                        domains_text=_domains(second_round),
                    ),
                    key="search_results_round_2",
                )
        else:
            await set_status(Stage.SEARCH_FAILED)
            await narrate("error", NarrationContext(error=ROUND_ONE_EMPTY_ERROR), key="error_round_1")
    else:
        await set_status(Stage.SEARCH_SKIPPED)
        await narrate("plan_queries", NarrationContext(plan=plan))
        if plan.should_search:
            missing = SearchUnavailableError()
            query = plan.primary_queries[0] if plan.primary_queries else ""
            log.warning("chat.search.unavailable", query=query)
            await event_callback(
                SSEEvent(
                    type=ChatEventType.SEARCH_ERROR,
                    data=SearchErrorPayload(round=1, query=query, error=missing.reason),
                )
            )
            await narrate("error", NarrationContext(error=missing.reason), key="error_search_unavailable")

    # Answer
    await set_status(Stage.SYNTHESIZE)
    await narrate("synthesize", NarrationContext(plan=plan))
    final_messages = build_answer_messages(messages, entries)

    await set_status(Stage.THINKING)
    await narrate("thinking", NarrationContext(plan=plan))

    answer_parts: list[str] = []
    try:
        async with orchestrator.llm.request_stream(final_messages) as response:
            await set_status(Stage.STREAMING)
            async for delta in iter_content_deltas(response):
                answer_parts.append(delta)
                await event_callback(content_event(delta))
    except ProviderError as e:
        log.error("chat.answer.stream_failed", error=str(e), streamed_chars=sum(map(len, answer_parts)))
        await narrate("error", NarrationContext(error=ANSWER_UNAVAILABLE_ERROR), key="error_answer")

    answer_text = "".join(answer_parts)

    follow_ups = await orchestrator.generate_follow_ups(user_query, answer_text)
    if follow_ups:
        await event_callback(SSEEvent(type=ChatEventType.FOLLOW_UPS, data=follow_ups))

    await set_status(Stage.DONE)
    total_ms = int((perf_counter() - workflow_start) * 1000)
    log.info(
        "chat.turn.completed",
        total_ms=total_ms,
        search_entries=len(entries),
        answer_chars=len(answer_text),
    )
    return answer_text

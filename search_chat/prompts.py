"""Prompt builders for every LLM call in the pipeline."""

from collections.abc import Sequence

from search_chat.models import ChatMessage, SearchPlan, SearchRoundEntry
from search_chat.text import to_str

Message = dict[str, str]

BRIEF_HISTORY_TURNS = 6
BRIEF_HISTORY_CHARS = 300
EVIDENCE_RESULTS_PER_ENTRY = 5
DIGEST_RESULTS_PER_ENTRY = 3
DIGEST_SNIPPET_CHARS = 150


def _lines(*lines: str) -> str:
    return "\n".join(lines)


def brief_history(messages: Sequence[ChatMessage]) -> str:
    recent = list(messages)[-BRIEF_HISTORY_TURNS:]
    return "\n".join(f"{m.role}: {to_str(m.content)[:BRIEF_HISTORY_CHARS]}" for m in recent)


def planner_messages(user_query: str, messages: Sequence[ChatMessage]) -> list[Message]:
    return [
        {
            "role": "system",
            "content": (
                "You are a search-orchestration planner. Decide if web retrieval is required "
                "before answering. Return JSON only."
            ),
        },
        {
            "role": "user",
            "content": _lines(
                "Decide web search strategy for this request.",
                "",
                f'User query: "{user_query}"',
                "",
                "Recent conversation (may be empty):",
                brief_history(messages) or "(none)",
                "",
                "Rules:",
                "- shouldSearch=true when freshness, external facts, citation-grade grounding, "
                "or URL/source verification is needed.",
                "- shouldSearch=false for pure reasoning, writing, translation, coding from provided context, "
                "or subjective advice.",
                "- mode=single for one coherent lookup question.",
                "- mode=multi for clearly distinct subtopics requiring separate lookups.",
                "- primaryQueries should be 0 items if mode=none, 1 item for single, up to 3 items for multi.",
                "- primaryResultCount is per-query max_results for first-round retrieval.",
                "- preferred range for primaryResultCount: 3~8 for single, 3~6 for multi.",
                "",
                "Return JSON schema exactly:",
                '{"shouldSearch": boolean, "mode": "none"|"single"|"multi", "primaryQueries": string[], '
                '"primaryResultCount": number, "reason": string}',
            ),
        },
    ]


def optimizer_messages(user_query: str, candidates: Sequence[str], mode: str, max_queries: int) -> list[Message]:
    return [
        {
            "role": "system",
            "content": _lines(
                "You rewrite user search queries for web retrieval quality.",
                "Return JSON only.",
                "Keep entity names, version numbers, and constraints.",
                "Use concise keyword-style phrases, not long sentences.",
            ),
        },
        {
            "role": "user",
            "content": _lines(
                f'User query: "{user_query[:240]}"',
                f"Round mode: {mode}",
                f"Max queries: {max_queries}",
                f"Candidate queries: {' | '.join(candidates)}",
                "",
                "Rules:",
                "- Keep same intent; improve precision and retrieval effectiveness.",
                "- Add key qualifiers only when they help (official docs, install, setup, latest version, etc.).",
                "- For Korean, rewrite polite request sentences into concise keyword-style search phrases.",
                "- Prefer core terms and constraints over full natural-language sentences.",
                "- Each query must be <= 90 chars.",
                "- Queries must be keyword-style; avoid polite request endings.",
                "- Do not return exactly the same sentence as user query.",
                "- Do not output markdown or explanation.",
                "",
                "Return JSON schema exactly:",
                '{"queries": string[]}',
            ),
        },
    ]


def retrieval_digest(entries: Sequence[SearchRoundEntry]) -> str:
    blocks = []
    for index, entry in enumerate(entries, start=1):
        top = "\n".join(
            f"{rank}. {hit.title} :: {hit.content[:DIGEST_SNIPPET_CHARS]}"
            for rank, hit in enumerate(entry.results[:DIGEST_RESULTS_PER_ENTRY], start=1)
        )
        blocks.append(
            _lines(
                f"[Primary #{index}] query={entry.query}",
                f"answer={entry.answer or '(none)'}",
                top or "(no results)",
            )
        )
    return "\n\n".join(blocks)


def completeness_messages(user_query: str, plan: SearchPlan, entries: Sequence[SearchRoundEntry]) -> list[Message]:
    return [
        {
            "role": "system",
            "content": (
                "You evaluate retrieval completeness. Return JSON only. "
                "Request follow-up search only if there are major factual gaps."
            ),
        },
        {
            "role": "user",
            "content": _lines(
                f'User query: "{user_query}"',
                f"Initial mode: {plan.mode.value}",
                "",
                "Primary search digest:",
                retrieval_digest(entries),
                "",
                "Return JSON schema exactly:",
                '{"needsMore": boolean, "refinedQueries": string[], "additionalResultCount": number, '
                '"reason": string}',
                "If needsMore=false, refinedQueries must be empty.",
                "If needsMore=true, provide 1-2 concise refined queries.",
                "If needsMore=true, additionalResultCount should usually be 8~12.",
            ),
        },
    ]


def follow_up_messages(user_query: str, answer_summary: str) -> list[Message]:
    return [
        {
            "role": "system",
            "content": _lines(
                "You generate exactly 3 high-quality Korean follow-up questions.",
                "Return JSON only.",
                "Questions must be actionable and non-duplicative.",
                "Do not repeat the user query wording.",
            ),
        },
        {
            "role": "user",
            "content": _lines(
                f'User query: "{user_query[:240]}"',
                f'Assistant answer summary: "{answer_summary or "(empty)"}"',
                "",
                "Rules:",
                "- Output 3 concise Korean questions.",
                "- Avoid asking exactly same as the original user query.",
                "- Each question should be one sentence, <= 60 chars if possible.",
                "- No numbering, no markdown.",
                "",
                "Return JSON schema exactly:",
                '{"questions": string[]}',
            ),
        },
    ]


NARRATOR_SYSTEM_PROMPT = _lines(
    'You are an orchestration narrator for a "Thinking" panel.',
    "Return exactly one Korean sentence.",
    "Keep it concise and natural, no bullet, no quotes, no markdown.",
    "Length target: about 28~55 Korean characters.",
    "Describe the current judgement and next action.",
    "Include at least one concrete detail from the context (query term, source count, max_results, or domain).",
    "Avoid repeating the same generic sentence across stages.",
    "Do not restate the same meaning as previous_lines.",
    "Do not invent numbers, domains, or facts that are not present in context.",
    "If a value is missing, avoid specific numeric claims.",
)


def narration_messages(fact_sheet: str) -> list[Message]:
    return [
        {"role": "system", "content": NARRATOR_SYSTEM_PROMPT},
        {"role": "user", "content": fact_sheet},
    ]


def intro_messages(user_query: str, plan: SearchPlan) -> list[Message]:
    return [
        {
            "role": "system",
            "content": _lines(
                "You write the first Thinking-panel message in Korean.",
                "Output exactly 5~6 lines, plain text only.",
                "Line 1: paraphrase the user request naturally (do not copy verbatim).",
                "Line 2: short lead-in sentence for execution plan.",
                'Line 3~5: TODO bullets, each starts with "- ".',
                "Last line: immediate next action.",
                "No markdown headings, no code block, no quotation marks.",
            ),
        },
        {
            "role": "user",
            "content": _lines(
                f"user_query: {user_query[:280]}",
                f"should_search: {str(plan.should_search).lower()}",
                f"search_mode: {plan.mode.value}",
                f"optimized_queries: {' | '.join(plan.primary_queries)[:220]}",
                "",
                "If should_search=true, the last line must mention starting web search first.",
                "If should_search=false, the last line must mention proceeding without search.",
            ),
        },
    ]


def build_search_context(entries: Sequence[SearchRoundEntry]) -> str:
    """Render every round's results as the evidence block of the answer prompt."""
    blocks = []
    for index, entry in enumerate(entries, start=1):
        results = "\n\n".join(
            f"{rank}. {hit.title}\nURL: {hit.url}\nSnippet: {hit.content}"
            for rank, hit in enumerate(entry.results[:EVIDENCE_RESULTS_PER_ENTRY], start=1)
        )
        blocks.append(
            _lines(
                f"Search block {index}",
                f"Round: {entry.round}",
                f"Query: {entry.query}",
                f"Search answer: {entry.answer or '(none)'}",
                results or "(no results)",
            )
        )
    return "\n\n----\n\n".join(blocks)


GENERIC_SYSTEM_PROMPT = "You are a helpful assistant. Answer directly and clearly."


def build_answer_system_prompt(entries: Sequence[SearchRoundEntry]) -> str:
    if not entries:
        return GENERIC_SYSTEM_PROMPT
    return _lines(
        "You are a careful assistant.",
        "Use the provided search evidence when relevant.",
        'Do not include inline source labels, URL lists, or a "출처" (sources) section in the answer body.',
        "The client app will render one consolidated source list at the end.",
        "If evidence is weak or conflicting, say so explicitly.",
        "",
        "[SEARCH CONTEXT START]",
        build_search_context(entries),
        "[SEARCH CONTEXT END]",
    )


def build_answer_messages(messages: Sequence[ChatMessage], entries: Sequence[SearchRoundEntry]) -> list[Message]:
    """System prompt plus the user/assistant turns of the conversation."""
    conversation = [
        {"role": m.role, "content": m.content} for m in messages if m.role in ("user", "assistant")
    ]
    return [{"role": "system", "content": build_answer_system_prompt(entries)}, *conversation]

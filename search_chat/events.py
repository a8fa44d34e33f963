"""SSE event models for chat streaming."""

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

DONE_FRAME = "data: [DONE]\n\n"
KEEPALIVE_FRAME = ": keepalive\n\n"
CONNECTED_FRAME = ": connected\n\n"


class ChatEventType(str, Enum):
    """Event types carried in the ``type`` field of every data frame."""

    STATUS = "status"
    THINKING_INTRO = "thinking_intro"
    SEARCH_PLAN = "search_plan"
    SEARCH_DECISION = "search_decision"
    SEARCH = "search"
    SEARCH_ERROR = "search_error"
    THINKING_TEXT = "thinking_text"
    CONTENT = "content"
    FOLLOW_UPS = "follow_ups"


class Stage(str, Enum):
    """Pipeline stages reported through ``status`` events, in emission order."""

    ANALYZE_INTENT = "analyze_intent"
    DECIDE_SEARCH = "decide_search"
    PLAN_QUERIES = "plan_queries"
    SEARCH_SKIPPED = "search_skipped"
    SEARCHING = "searching"
    SEARCH_FAILED = "search_failed"
    ANALYZING = "analyzing"
    SEARCHING_2 = "searching_2"
    SYNTHESIZE = "synthesize"
    THINKING = "thinking"
    STREAMING = "streaming"
    DONE = "done"


def _wire(value: Any) -> Any:
    if isinstance(value, BaseModel):
        to_wire = getattr(value, "to_wire", None)
        return to_wire() if to_wire else value.model_dump(mode="json")
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return [_wire(item) for item in value]
    if isinstance(value, dict):
        return {key: _wire(item) for key, item in value.items()}
    return value


class SSEEvent(BaseModel):
    """One ``data: {"type": ..., "data": ...}`` frame."""

    type: ChatEventType = Field(description="Event type identifier")
    data: Any = Field(default=None, description="Event payload")

    def format(self) -> str:
        """Format as SSE message: 'data: json\\n\\n'."""
        frame = {"type": self.type.value, "data": _wire(self.data)}
        return f"data: {json.dumps(frame, ensure_ascii=False)}\n\n"


def status_event(stage: Stage) -> SSEEvent:
    return SSEEvent(type=ChatEventType.STATUS, data=stage.value)


def thinking_event(text: str) -> SSEEvent:
    return SSEEvent(type=ChatEventType.THINKING_TEXT, data=text)


def content_event(delta: str) -> SSEEvent:
    return SSEEvent(type=ChatEventType.CONTENT, data=delta)

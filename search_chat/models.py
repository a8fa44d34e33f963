"""Pydantic models for the search chat pipeline.

Models that travel over the SSE stream or the HTTP API use camelCase aliases
on the wire (``shouldSearch``, ``primaryQueries``) and snake_case in Python.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for models serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class SearchMode(str, Enum):
    NONE = "none"
    SINGLE = "single"
    MULTI = "multi"


class SearchPlan(WireModel):
    """Decision on whether and how to search before answering."""

    should_search: bool = Field(description="Whether web retrieval runs before answering")
    mode: SearchMode = Field(description="none iff should_search is false; multi needs 2+ queries")
    primary_queries: list[str] = Field(
        default_factory=list,
        description="Deduplicated first-round queries (max 1 for single, 3 for multi)",
        examples=[["파이썬 리스트 튜플 차이"]],
    )
    primary_result_count: int = Field(
        ge=3,
        le=12,
        description="Per-query max_results for the first round",
        examples=[5],
    )
    reason: str = Field(min_length=1, description="Planner justification")


class SecondSearchDecision(WireModel):
    """Whether a follow-up search round is warranted after round 1."""

    needs_more: bool = False
    refined_queries: list[str] = Field(default_factory=list, description="At most 2 refined queries")
    additional_result_count: int = Field(
        default=0,
        ge=0,
        le=15,
        description="Per-query max_results for round 2; 0 when needs_more is false",
    )
    reason: str = Field(min_length=1)


class SearchHit(WireModel):
    """A single result returned by the search provider."""

    title: str = ""
    url: str = ""
    content: str = Field(default="", description="Sanitized snippet, at most 420 characters")


class SearchResponse(WireModel):
    """Search provider response; also the body of POST /api/search."""

    answer: str = Field(default="", description="Provider's direct-answer summary, may be empty")
    results: list[SearchHit] = Field(default_factory=list)


class SearchRoundEntry(WireModel):
    """One query's successful retrieval outcome within a search round."""

    round: int = Field(ge=1, le=2)
    query: str
    max_results: int
    answer: str = ""
    results: list[SearchHit] = Field(default_factory=list)

    @property
    def source_count(self) -> int:
        return len(self.results)


class SearchErrorPayload(WireModel):
    round: int
    query: str
    error: str


class ChatMessage(BaseModel):
    role: str = Field(description="'user' or 'assistant'", examples=["user"])
    content: str = Field(default="", examples=["파이썬 리스트와 튜플의 차이를 알려줘"])


class ChatRequest(BaseModel):
    """Incoming chat turn: the whole conversation, last message from the user."""

    messages: list[ChatMessage] = Field(default_factory=list)


class SearchRequest(WireModel):
    query: str = Field(default="", examples=["tavily search api"])
    max_results: int | float | None = Field(default=None, examples=[5])


class ErrorResponse(BaseModel):
    """Structured error response."""

    error: str = Field(description="Human-readable error message", examples=["messages is required"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(examples=["ok"])
    version: str = Field(default="", examples=["0.1.0"])

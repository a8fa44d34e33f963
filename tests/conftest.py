"""Shared fixtures: settings and a fake upstream for both providers."""

import json
from typing import Any

import httpx
import pytest
import pytest_asyncio

from search_chat.config import Settings
from search_chat.llm import LLMClient
from search_chat.orchestrator import SearchOrchestrator
from search_chat.search import TavilySearchClient

LLM_BASE_URL = "https://llm.test/v4"
SEARCH_URL = "https://search.test/search"

# First system-prompt fragment of each orchestrator call.
PROMPT_KINDS = {
    "search-orchestration planner": "plan",
    "rewrite user search queries": "optimize",
    "evaluate retrieval completeness": "completeness",
    "follow-up questions": "follow_ups",
    "orchestration narrator": "narration",
    "first Thinking-panel message": "intro",
}


def completion_response(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


def stream_body(deltas: list[str]) -> str:
    frames = [f"data: {json.dumps({'choices': [{'delta': {'content': d}}]})}\n\n" for d in deltas]
    return "".join(frames) + "data: [DONE]\n\n"


def search_payload(query: str, count: int = 2) -> dict[str, Any]:
    return {
        "answer": f"{query} 요약",
        "results": [
            {
                "title": f"{query} 결과 {i}",
                "url": f"https://site{i}.example.com/{i}",
                "content": f"**{query}** 관련 [문서]({i}) 내용 {i}",
            }
            for i in range(1, count + 1)
        ],
    }


class FakeUpstream:
    """httpx.MockTransport handler answering chat-completion and search calls.

    ``replies`` maps a prompt kind to a JSON-able value, a raw string, or an int
    HTTP status to fail with. ``search_failures`` maps a query to a status code.
    """

    def __init__(self) -> None:
        self.requests: list[dict[str, Any]] = []
        self.replies: dict[str, Any] = {
            "plan": {
                "shouldSearch": True,
                "mode": "single",
                "primaryQueries": ["파이썬 리스트 튜플 차이"],
                "primaryResultCount": 4,
                "reason": "개념 비교에 공식 문서 근거가 필요함",
            },
            "optimize": {"queries": ["python list vs tuple 차이"]},
            "completeness": {"needsMore": False, "refinedQueries": [], "reason": "충분함"},
            "follow_ups": {"questions": ["튜플이 더 빠른 이유는?", "언제 리스트를 써야 해?", "네임드튜플은 뭐야?"]},
            "intro": "리스트와 튜플 차이를 묻고 계십니다.\n다음 순서로 진행합니다.\n- 검색\n- 비교\n- 정리\n검색부터 시작합니다.",
        }
        self.answer_deltas = ["리스트는 ", "가변이고 ", "튜플은 불변입니다."]
        self.answer_status = 200
        self.search_failures: dict[str, int] = {}
        self.search_counts: dict[str, int] = {}

    def kind_of(self, body: dict[str, Any]) -> str:
        system = body["messages"][0]["content"]
        for fragment, kind in PROMPT_KINDS.items():
            if fragment in system:
                return kind
        return "answer"

    def calls(self, kind: str) -> list[dict[str, Any]]:
        return [r for r in self.requests if r["kind"] == kind]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if str(request.url) == SEARCH_URL:
            self.requests.append({"kind": "search", "body": body})
            status = self.search_failures.get(body["query"])
            if status:
                return httpx.Response(status, json={"detail": "boom"})
            return httpx.Response(200, json=search_payload(body["query"], self.search_counts.get(body["query"], 2)))

        kind = "answer" if body.get("stream") else self.kind_of(body)
        self.requests.append({"kind": kind, "body": body})

        if kind == "answer":
            if self.answer_status != 200:
                return httpx.Response(self.answer_status, text="upstream exploded")
            return httpx.Response(
                200,
                content=stream_body(self.answer_deltas).encode("utf-8"),
                headers={"Content-Type": "text/event-stream"},
            )

        if kind == "narration":
            stage = body["messages"][1]["content"].split("\n", 1)[0].removeprefix("stage: ")
            return completion_response(f"```\nignored\n```\n{stage} 단계 진행 중: {len(self.requests)}번째 호출")

        reply = self.replies.get(kind)
        if isinstance(reply, int):
            return httpx.Response(reply, text="error")
        return completion_response(reply if isinstance(reply, str) else json.dumps(reply, ensure_ascii=False))


SETTINGS_ENV_NAMES = (
    "LLM_API_KEY",
    "LLM_BASE_URL",
    "ORCHESTRATOR_MODEL",
    "RESPONSE_MODEL",
    "TAVILY_API_KEY",
    "TAVILY_SEARCH_URL",
    "LLM_DISABLE_THINKING",
    "PORT",
)


@pytest.fixture(autouse=True)
def isolated_settings_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's environment and `.env` out of every Settings() built in tests."""
    for name in SETTINGS_ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setitem(Settings.model_config, "env_file", None)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        llm_api_key="test-llm-key",
        llm_base_url=LLM_BASE_URL,
        tavily_api_key="test-search-key",
        tavily_search_url=SEARCH_URL,
    )


@pytest.fixture
def offline_settings() -> Settings:
    """No provider credentials: every step takes its deterministic fallback."""
    return Settings(llm_base_url=LLM_BASE_URL, tavily_search_url=SEARCH_URL)


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest_asyncio.fixture
async def http_client(upstream: FakeUpstream):
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as client:
        yield client


@pytest.fixture
def orchestrator(settings: Settings, http_client: httpx.AsyncClient) -> SearchOrchestrator:
    return SearchOrchestrator(LLMClient(settings, http_client), TavilySearchClient(settings, http_client))

"""Domain-specific exceptions for the search chat pipeline."""


class ChatPipelineError(Exception):
    """Base exception for search chat pipeline errors."""


class InvalidChatRequestError(ChatPipelineError):
    """Raised when a client request is malformed. Maps to HTTP 400."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class ProviderError(ChatPipelineError):
    """Raised when an upstream LLM or search call fails.

    Covers non-2xx responses, unparseable bodies, network failures and
    timeouts. Callers inside the pipeline always catch this and fall back.
    """

    def __init__(self, provider: str, reason: str, status_code: int | None = None) -> None:
        self.provider = provider
        self.reason = reason
        self.status_code = status_code
        suffix = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"{provider} request failed{suffix}: {reason}")


class SearchUnavailableError(ProviderError):
    """Raised when search is requested but no search provider key is configured."""

    def __init__(self, provider: str = "tavily") -> None:
        super().__init__(provider, "TAVILY_API_KEY is missing. Search is skipped.")


class StreamDecodeError(ChatPipelineError):
    """Raised for a malformed frame in an upstream SSE stream. Always skipped."""

    def __init__(self, line: str, reason: str) -> None:
        self.line = line
        self.reason = reason
        super().__init__(f"Malformed stream frame ({reason}): {line[:80]}")

"""Search Chat Service - search-orchestrated chat with streaming narration"""

__version__ = "0.1.0"

from search_chat.config import Settings, get_settings
from search_chat.exceptions import (
    ChatPipelineError,
    InvalidChatRequestError,
    ProviderError,
    SearchUnavailableError,
    StreamDecodeError,
)
from search_chat.models import (
    ChatMessage,
    ChatRequest,
    SearchHit,
    SearchMode,
    SearchPlan,
    SearchResponse,
    SearchRoundEntry,
    SecondSearchDecision,
)
from search_chat.orchestrator import SearchOrchestrator
from search_chat.server import get_app
from search_chat.workflow import run_chat_workflow

__all__ = [
    # Models
    "ChatMessage",
    "ChatRequest",
    "SearchMode",
    "SearchPlan",
    "SecondSearchDecision",
    "SearchHit",
    "SearchResponse",
    "SearchRoundEntry",
    # Configuration
    "Settings",
    "get_settings",
    # Exceptions
    "ChatPipelineError",
    "InvalidChatRequestError",
    "ProviderError",
    "SearchUnavailableError",
    "StreamDecodeError",
    # Orchestration
    "SearchOrchestrator",
    "run_chat_workflow",
    # Server
    "get_app",
]

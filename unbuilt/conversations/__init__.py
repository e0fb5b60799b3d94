"""AI conversations about gap analyses, with input screening."""

from .deduplication import QueryDeduplicator, calculate_similarity
from .input_validator import InputValidator
from .moderation import ContentModerator
from .prompt_injection import PromptInjectionDetector
from .service import ConversationService

__all__ = [
    "ContentModerator",
    "ConversationService",
    "InputValidator",
    "PromptInjectionDetector",
    "QueryDeduplicator",
    "calculate_similarity",
]

"""Validation and sanitisation of user chat messages."""

import html
import re
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, Optional

from unbuilt.core.config import CONVERSATION_LIMITS, normalize_tier
from unbuilt.core.logging import get_logger

logger = get_logger(__name__)

MALICIOUS_CONTENT = "Message contains potentially malicious content"

EVENT_HANDLER = re.compile(r"on\w+\s*=", re.IGNORECASE)
SCRIPT_TAG = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE)
HTML_TAG = re.compile(r"<[^>]*>")

# Checked after HTML tags are stripped
MALICIOUS_PATTERNS = [
    re.compile(
        r"\b(SELECT|INSERT|UPDATE|DELETE|DROP|CREATE|ALTER|EXEC|EXECUTE)\b.*\b(FROM|INTO|TABLE|DATABASE)\b",
        re.IGNORECASE,
    ),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"[;&|`]\s*\w+"),
    re.compile(r"\.\.[/\\]"),
    re.compile(r"\x00"),
    re.compile(r"[^\w\s.,!?'\"@#$%^&*()_+\-=\[\]{};:<>/\\|`~]{10,}"),
]

SUSPICIOUS_KEYWORDS = [
    "ignore previous",
    "ignore all previous",
    "disregard previous",
    "forget previous",
    "new instructions",
    "system prompt",
    "you are now",
    "act as",
    "pretend to be",
    "roleplay as",
    "simulate",
    "jailbreak",
    "dan mode",
    "developer mode",
]

MIN_CONTENT_AROUND_SCRIPT = 10
REPEATED_CHARACTER = re.compile(r"(.)\1{10,}")
REPEATED_WORD_SHARE = 0.3


@dataclass
class ValidationResult:
    is_valid: bool
    sanitized: str
    reason: Optional[str] = None
    severity: Optional[str] = None


def max_message_length(tier: Optional[str]) -> int:
    return CONVERSATION_LIMITS[normalize_tier(tier)]["max_message_length"]


def strip_html(text: str) -> str:
    return HTML_TAG.sub("", text)


def normalize_whitespace(text: str) -> str:
    """Collapse spaces per line and keep at most one blank line between paragraphs."""
    lines = [re.sub(r"\s+", " ", line).strip() for line in text.split("\n")]
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines))


class InputValidator:

    def validate(self, message: str, tier: Optional[str] = "free",
                 context: Optional[Dict[str, Any]] = None) -> ValidationResult:
        """Check a message and return its sanitised form.

        Checks run in order and the first failure wins: emptiness, tier
        length, inline event handlers, script tags, malicious patterns and
        prompt-manipulation keywords.
        """
        context = context or {}
        if not message or not message.strip():
            return ValidationResult(False, "", "Message cannot be empty", "low")

        tier = normalize_tier(tier)
        limit = max_message_length(tier)
        if len(message) > limit:
            return ValidationResult(
                False,
                message[:limit],
                f"Message exceeds maximum length of {limit} characters for {tier} tier",
                "low",
            )

        if EVENT_HANDLER.search(message):
            self._violation("event_handler_detected", message, "high", context)
            return ValidationResult(False, "", MALICIOUS_CONTENT, "high")

        if self._is_script_attack(message):
            self._violation("script_tag_detected", message, "high", context)
            return ValidationResult(False, "", MALICIOUS_CONTENT, "high")

        sanitized = strip_html(message)

        for pattern in MALICIOUS_PATTERNS:
            if pattern.search(sanitized):
                self._violation("malicious_pattern_detected", sanitized, "high", context)
                return ValidationResult(False, "", MALICIOUS_CONTENT, "high")

        lowered = sanitized.lower()
        for keyword in SUSPICIOUS_KEYWORDS:
            if keyword in lowered:
                self._violation("suspicious_keyword_detected", sanitized, "medium", context, keyword=keyword)
                return ValidationResult(
                    False,
                    "",
                    "Message contains suspicious content that may attempt to manipulate the AI",
                    "medium",
                )

        sanitized = normalize_whitespace(sanitized)
        if not sanitized.strip():
            return ValidationResult(False, "", "Message contains no valid content after sanitization", "low")

        return ValidationResult(True, sanitized.strip())

    @staticmethod
    def _is_script_attack(message: str) -> bool:
        if not SCRIPT_TAG.search(message):
            return False
        without_html = strip_html(message).strip()
        outside_scripts = SCRIPT_TAG.sub("", message).strip()
        return len(without_html) < MIN_CONTENT_AROUND_SCRIPT or len(outside_scripts) < MIN_CONTENT_AROUND_SCRIPT

    @staticmethod
    def _violation(kind: str, text: str, severity: str, context: Dict[str, Any], **extra: Any) -> None:
        logger.warning(
            "conversation_input_rejected",
            violation=kind,
            severity=severity,
            input_length=len(text),
            input_preview=text[:100],
            **context,
            **extra,
        )

    @staticmethod
    def detect_excessive_repetition(text: str) -> bool:
        """True for long character runs or one word filling over 30% of the message."""
        if REPEATED_CHARACTER.search(text):
            return True

        words = [w for w in text.lower().split() if len(w) > 3]
        if not words:
            return False
        _, top = Counter(words).most_common(1)[0]
        return top / len(words) > REPEATED_WORD_SHARE

    @staticmethod
    def sanitize_for_display(text: str) -> str:
        return html.escape(text, quote=True).replace("/", "&#x2F;")

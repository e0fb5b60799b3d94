"""Prompt injection detection for user messages sent to the AI."""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from unbuilt.core.logging import get_logger

logger = get_logger(__name__)

SEVERITY_RANK = {"low": 0, "medium": 1, "high": 2, "critical": 3}


def max_severity(current: str, candidate: str) -> str:
    return candidate if SEVERITY_RANK[candidate] > SEVERITY_RANK[current] else current


def _compile(*patterns: str) -> List[re.Pattern]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


SYSTEM_OVERRIDE_PATTERNS = _compile(
    r"ignore\s+(all\s+)?(previous|prior|above|earlier)\s+(instructions?|prompts?|commands?|directives?)",
    r"disregard\s+(all\s+)?(previous|prior|above|earlier)\s+(instructions?|prompts?|commands?)",
    r"forget\s+(all\s+)?(previous|prior|above|earlier)\s+(instructions?|prompts?|commands?)",
    r"override\s+(previous|system)\s+(instructions?|prompts?|settings?)",
    r"new\s+(instructions?|prompts?|system\s+prompt)",
    r"reset\s+(instructions?|prompts?|system)",
    r"clear\s+(previous|all)\s+(instructions?|prompts?|memory)",
)

ROLE_SWITCHING_PATTERNS = _compile(
    r"you\s+are\s+now\s+(a|an)\s+\w+",
    r"act\s+as\s+(a|an)\s+\w+",
    r"pretend\s+(to\s+be|you\s+are)\s+(a|an)?\s*\w+",
    r"roleplay\s+as\s+(a|an)\s+\w+",
    r"simulate\s+(a|an)\s+\w+",
    r"behave\s+(like|as)\s+(a|an)\s+\w+",
    r"from\s+now\s+on,?\s+you\s+(are|will\s+be)\s+",
)

JAILBREAK_PATTERNS = _compile(
    r"jailbreak",
    r"DAN\s+mode",
    r"developer\s+mode",
    r"god\s+mode",
    r"admin\s+mode",
    r"unrestricted\s+mode",
    r"bypass\s+(restrictions?|filters?|safety)",
    r"disable\s+(safety|filters?|restrictions?)",
    r"remove\s+(safety|filters?|restrictions?|limitations?)",
)

INSTRUCTION_INJECTION_PATTERNS = _compile(
    r"\[system\]",
    r"\[/system\]",
    r"\[assistant\]",
    r"\[/assistant\]",
    r"\[user\]",
    r"\[/user\]",
    r"<\|system\|>",
    r"<\|assistant\|>",
    r"<\|user\|>",
    r"###\s*system",
    r"###\s*assistant",
    r"###\s*instruction",
)

DELIMITER_PATTERNS = _compile(
    r"```system",
    r"```instruction",
    r"```prompt",
    r"---\s*system",
    r"---\s*instruction",
    r"===\s*system",
    r"===\s*instruction",
)

CONTEXT_MANIPULATION_PATTERNS = _compile(
    r"the\s+(above|previous)\s+(text|content|message)\s+(is|was)\s+(fake|false|incorrect|wrong)",
    r"everything\s+(above|before)\s+this\s+(is|was)\s+(fake|false|test)",
    r"ignore\s+everything\s+(above|before|prior)",
    r"disregard\s+the\s+(context|conversation|history)",
)

OBFUSCATION_PATTERNS = [
    re.compile(r"\\x[0-9a-f]{2}", re.IGNORECASE),
    re.compile(r"\\u[0-9a-f]{4}", re.IGNORECASE),
    re.compile(r"&#\d+;", re.IGNORECASE),
    re.compile(r"base64", re.IGNORECASE),
    re.compile(r"rot13", re.IGNORECASE),
    re.compile(r"\\[nrt]"),
]

# (category, patterns, score, severity)
PATTERN_GROUPS: List[Tuple[str, List[re.Pattern], float, str]] = [
    ("system_override", SYSTEM_OVERRIDE_PATTERNS, 0.9, "critical"),
    ("role_switching", ROLE_SWITCHING_PATTERNS, 0.8, "high"),
    ("jailbreak", JAILBREAK_PATTERNS, 1.0, "critical"),
    ("instruction_injection", INSTRUCTION_INJECTION_PATTERNS, 0.85, "high"),
    ("delimiter_manipulation", DELIMITER_PATTERNS, 0.6, "medium"),
    ("context_manipulation", CONTEXT_MANIPULATION_PATTERNS, 0.7, "medium"),
    ("obfuscation", OBFUSCATION_PATTERNS, 0.5, "medium"),
]

EXTRACTION_PATTERNS = _compile(
    r"what\s+(is|are)\s+your\s+(instructions?|prompts?|system\s+prompt)",
    r"show\s+me\s+your\s+(instructions?|prompts?|system\s+prompt)",
    r"reveal\s+your\s+(instructions?|prompts?|system\s+prompt)",
    r"tell\s+me\s+your\s+(instructions?|prompts?|system\s+prompt)",
    r"print\s+your\s+(instructions?|prompts?|system\s+prompt)",
    r"display\s+your\s+(instructions?|prompts?|system\s+prompt)",
    r"repeat\s+your\s+(instructions?|prompts?|system\s+prompt)",
    r"what\s+were\s+you\s+told",
    r"what\s+are\s+you\s+programmed\s+to",
)

SPECIAL_CHARACTER = re.compile(r"[^\w\s.,!?'\"]")
SPECIAL_CHARACTER_RATIO = 0.2
ENCODING_PATTERNS = [
    re.compile(r"(%[0-9a-f]{2}){5,}", re.IGNORECASE),
    re.compile(r"(\\x[0-9a-f]{2}){5,}", re.IGNORECASE),
    re.compile(r"(\\u[0-9a-f]{4}){3,}", re.IGNORECASE),
]

SYSTEM_FIELDS = ("system", "assistant", "function", "tool")


@dataclass
class InjectionResult:
    is_injection: bool
    confidence: float
    detected_patterns: List[str] = field(default_factory=list)
    severity: str = "low"
    reason: Optional[str] = None


@dataclass
class InputAnalysis:
    is_safe: bool
    issues: List[str]
    severity: str


class PromptInjectionDetector:
    """Regex detector for attempts to override or extract the AI's instructions."""

    def detect(self, text: str, context: Optional[Dict[str, Any]] = None) -> InjectionResult:
        detected: List[str] = []
        severity = "low"
        score = 0.0

        for category, patterns, weight, group_severity in PATTERN_GROUPS:
            hits = [category for pattern in patterns if pattern.search(text)]
            if not hits:
                continue
            detected.extend(hits)
            score += weight
            severity = max_severity(severity, group_severity)

        confidence = min(score, 1.0)
        is_injection = confidence > 0.5 or bool(detected)

        if is_injection:
            context = context or {}
            log = logger.error if severity in ("high", "critical") else logger.warning
            log(
                "prompt_injection_detected",
                patterns=detected,
                confidence=confidence,
                severity=severity,
                input_length=len(text),
                **context,
            )

        return InjectionResult(
            is_injection=is_injection,
            confidence=confidence,
            detected_patterns=detected,
            severity=severity,
            reason=f"Detected {len(detected)} potential injection pattern(s)" if is_injection else None,
        )

    @staticmethod
    def validate_message_structure(message: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
        """Reject payloads that try to smuggle roles or nested conversations."""
        role = message.get("role")
        if role and role != "user":
            return False, "Invalid role specified in message"

        if message.get("messages") or message.get("conversation"):
            return False, "Nested message structures are not allowed"

        for name in SYSTEM_FIELDS:
            if message.get(name):
                return False, f"System field '{name}' is not allowed in user messages"

        return True, None

    @staticmethod
    def detect_system_prompt_extraction(text: str) -> bool:
        return any(pattern.search(text) for pattern in EXTRACTION_PATTERNS)

    @staticmethod
    def detect_obfuscation(text: str) -> bool:
        if not text:
            return False
        if len(SPECIAL_CHARACTER.findall(text)) / len(text) > SPECIAL_CHARACTER_RATIO:
            return True
        return any(pattern.search(text) for pattern in ENCODING_PATTERNS)

    def analyze_input(self, text: str, context: Optional[Dict[str, Any]] = None) -> InputAnalysis:
        """Injection, extraction and obfuscation checks combined."""
        issues = []
        severity = "low"

        injection = self.detect(text, context)
        if injection.is_injection:
            issues.append("Prompt injection detected")
            severity = injection.severity

        if self.detect_system_prompt_extraction(text):
            issues.append("System prompt extraction attempt")
            severity = max_severity(severity, "medium")

        if self.detect_obfuscation(text):
            issues.append("Obfuscation detected")
            severity = max_severity(severity, "medium")

        return InputAnalysis(is_safe=not issues, issues=issues, severity=severity)

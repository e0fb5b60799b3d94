"""Content moderation for conversation messages and AI replies."""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .prompt_injection import max_severity

from unbuilt.core.logging import get_logger

logger = get_logger(__name__)


def _compile(*patterns: str, flags: int = re.IGNORECASE) -> List[re.Pattern]:
    return [re.compile(p, flags) for p in patterns]


SELF_HARM_PATTERNS = _compile(
    r"\b(want\s+to\s+die|suicide|end\s+my\s+life|kill\s+myself)\b",
    r"\b(self\s+harm|cut\s+myself|hurt\s+myself)\b",
    r"\b(no\s+reason\s+to\s+live|life\s+is\s+not\s+worth)\b",
)

HATE_SPEECH_PATTERNS = _compile(
    r"\b(n[i1]gg[ae]r|ch[i1]nk|sp[i1]c|k[i1]ke|wetback|raghead)\b",
    r"\b(f[a@]gg[o0]t|dyke|tr[a@]nny)\b",
    r"\b(b[i1]tch|wh[o0]re|sl[u*]t|c[u*]nt)\b",
    r"\b(terrorist|extremist)\s+(muslim|islam|arab)",
    r"\b(hate|despise|loathe)\s+(all\s+)?(blacks|whites|jews|muslims|christians|asians|latinos|gays|women|men)\b",
)

HARASSMENT_PATTERNS = _compile(
    r"\b(kill\s+yourself|kys|die\s+in\s+a\s+fire)\b",
    r"\b(you\s+should\s+(die|kill\s+yourself))\b",
    r"\b(worthless|pathetic|loser|idiot|moron|stupid)\s+(person|human|user)\b",
    r"\b(go\s+to\s+hell|burn\s+in\s+hell)\b",
    r"\b(threat|threaten|harm|hurt|attack)\s+(you|your\s+family)\b",
)

VIOLENCE_PATTERNS = _compile(
    r"\b(bomb|explosion|terrorist\s+attack|mass\s+shooting)\b",
    r"\b(murder|assassinate|execute|eliminate)\s+(someone|people|person)\b",
    r"\b(weapon|gun|knife|explosive)\s+(to\s+)?(kill|harm|hurt)\b",
    r"\b(plan(ning)?\s+to\s+(kill|harm|attack))\b",
)

SEXUAL_CONTENT_PATTERNS = _compile(
    r"\b(porn|pornography|xxx|nsfw|explicit\s+content)\b",
    r"\b(sex(ual)?\s+(content|material|images))\b",
    r"\b(nude|naked|strip)\s+(photos?|images?|videos?)\b",
)

SPAM_PATTERNS = [
    re.compile(r"(https?://[^\s]+){3,}", re.IGNORECASE),
    # Shouting is matched case-sensitively
    re.compile(r"\b[A-Z]{10,}\b"),
    re.compile(r"[!?]{5,}"),
    re.compile(r"\b(bitcoin|crypto|nft|token)\s+(giveaway|airdrop|free\s+money)\b", re.IGNORECASE),
    re.compile(r"\b(make\s+\$\d+|earn\s+\$\d+)\s+(per\s+day|per\s+hour|fast|quickly)\b", re.IGNORECASE),
]

SCAM_PATTERNS = _compile(
    r"\b(click\s+here|visit\s+now|limited\s+time|act\s+now)\b",
    r"(100%\s+guaranteed|\brisk\s+free\b|\bno\s+risk\b)",
    r"\b(send\s+money|wire\s+transfer|gift\s+card)\b",
    r"\b(nigerian\s+prince|inheritance|lottery\s+winner)\b",
)

FINANCIAL_ADVICE_PATTERNS = _compile(
    r"\b(invest\s+in|buy\s+stock|sell\s+stock)\b",
    r"\b(guaranteed\s+return|sure\s+profit)\b",
    r"\b(insider\s+trading|pump\s+and\s+dump)\b",
)

# (category, patterns, severity, requires_review); None severity only flags
MODERATION_RULES: List[Tuple[str, List[re.Pattern], Optional[str], bool]] = [
    ("self_harm", SELF_HARM_PATTERNS, "critical", True),
    ("hate_speech", HATE_SPEECH_PATTERNS, "critical", True),
    ("harassment", HARASSMENT_PATTERNS, "high", True),
    ("violence", VIOLENCE_PATTERNS, "high", True),
    ("sexual_content", SEXUAL_CONTENT_PATTERNS, "medium", True),
    ("spam", SPAM_PATTERNS, "medium", False),
    ("scam", SCAM_PATTERNS, "high", True),
    ("financial_advice", FINANCIAL_ADVICE_PATTERNS, None, False),
]

AI_RESPONSE_RULES = [rule for rule in MODERATION_RULES if rule[0] in ("self_harm", "violence")]

REPORT_CATEGORY_SEVERITY = {
    "harmful": "critical",
    "inappropriate": "high",
    "inaccurate": "medium",
    "spam": "medium",
    "other": "low",
}


@dataclass
class ModerationResult:
    approved: bool
    severity: str = "low"
    categories: List[str] = field(default_factory=list)
    requires_review: bool = False
    reason: Optional[str] = None


def matches_any(text: str, patterns: List[re.Pattern]) -> bool:
    return any(pattern.search(text) for pattern in patterns)


class ContentModerator:
    """Blocks hateful, violent, sexual and scam content in a business chat."""

    def moderate(self, content: str, context: Optional[Dict[str, Any]] = None) -> ModerationResult:
        context = context or {}
        categories: List[str] = []
        severity = "low"
        requires_review = False

        for category, patterns, rule_severity, review in MODERATION_RULES:
            if not matches_any(content, patterns):
                continue
            categories.append(category)
            if rule_severity:
                severity = max_severity(severity, rule_severity)
            requires_review = requires_review or review

            if category == "self_harm":
                logger.critical(
                    "self_harm_content_detected",
                    content_length=len(content),
                    **context,
                )

        approved = severity == "low" or (severity == "medium" and not requires_review)
        reason = None
        if not approved:
            reason = f"Content contains {', '.join(categories)}"
            log = logger.error if severity in ("high", "critical") else logger.warning
            log(
                "content_moderation_violation",
                categories=categories,
                severity=severity,
                content_length=len(content),
                content_preview=content[:100],
                **context,
            )

        return ModerationResult(
            approved=approved,
            severity=severity,
            categories=categories,
            requires_review=requires_review,
            reason=reason,
        )

    def moderate_ai_response(self, content: str) -> ModerationResult:
        """Lighter check for generated replies: self harm and violence only."""
        categories = []
        severity = "low"
        for category, patterns, rule_severity, _ in AI_RESPONSE_RULES:
            if matches_any(content, patterns):
                categories.append(category)
                severity = max_severity(severity, rule_severity)

        approved = severity == "low"
        return ModerationResult(
            approved=approved,
            severity=severity,
            categories=categories,
            requires_review=severity in ("high", "critical"),
            reason=None if approved else f"AI response contains {', '.join(categories)}",
        )

    @staticmethod
    def category_severity(category: str) -> str:
        return REPORT_CATEGORY_SEVERITY.get(category, "low")

    def report_message(
        self,
        message_id: str,
        reported_by: str,
        category: str,
        reason: str,
        details: Optional[str] = None,
        content: str = "",
        conversation_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        severity = self.category_severity(category)
        report_id = f"report_{int(datetime.utcnow().timestamp() * 1000)}_{message_id}"

        log = logger.error if severity in ("high", "critical") else logger.warning
        log(
            "message_reported",
            report_id=report_id,
            message_id=message_id,
            conversation_id=conversation_id,
            reported_by=reported_by,
            category=category,
            severity=severity,
            reason=reason,
            details=details,
            content_preview=content[:200],
        )
        return {"success": True, "report_id": report_id, "severity": severity}

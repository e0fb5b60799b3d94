"""LLM client for gap analysis and conversation replies."""

import json
import re
import time
from typing import Any, Dict, List, Optional, Tuple

from anthropic import Anthropic, APIError

from unbuilt.core.config import settings
from unbuilt.core.logging import get_logger
from unbuilt.core.rate_limit import calculate_cost
from unbuilt.services.progress import round_half_up

logger = get_logger(__name__)

GAP_CATEGORIES = [
    "Tech That's Missing",
    "Services That Don't Exist",
    "Products Nobody's Made",
    "Business Models",
]

RATINGS = ("high", "medium", "low")

GAP_SYSTEM_PROMPT = """You are a market research analyst who finds gaps in the market:
products, services, technologies and business models that people need but that
do not exist yet (or exist only in a poor form).

For every gap provide:
1. title: a concise name for the opportunity
2. description: what it is, how it works, who it is for, and how it differs
   from existing alternatives
3. category: exactly one of "Tech That's Missing", "Services That Don't Exist",
   "Products Nobody's Made", "Business Models"
4. feasibility: "high", "medium" or "low" (technical complexity, resources,
   regulation, time to market)
5. marketPotential: "high", "medium" or "low" (addressable market, growth,
   willingness to pay, competition)
6. innovationScore: integer 1-10 (1-3 incremental, 4-6 notable,
   7-8 breakthrough, 9-10 paradigm shifting)
7. marketSize: a realistic TAM estimate such as "$2.3B global market"
8. gapReason: why this does not exist yet

Respond with a single JSON object and nothing else:
{"gaps": [{"title": "...", "description": "...", "category": "...",
"feasibility": "...", "marketPotential": "...", "innovationScore": 7,
"marketSize": "...", "gapReason": "..."}]}"""

DEMO_GAPS: List[Dict[str, Any]] = [
    {
        "title": "AI-Powered Market Gap Analyzer",
        "description": "An intelligent platform that continuously scans market trends, patent databases, and consumer complaints to identify unaddressed needs and business opportunities in real-time.",
        "category": "Tech That's Missing",
        "feasibility": "high",
        "market_potential": "high",
        "innovation_score": 8,
        "market_size": "$2.3B",
        "gap_reason": "Complex data integration and lack of unified market intelligence APIs",
    },
    {
        "title": "Virtual Reality Therapy Sessions",
        "description": "Immersive VR therapy platform that provides accessible mental health support with AI therapists and realistic environments for treating phobias, PTSD, and anxiety disorders.",
        "category": "Services That Don't Exist",
        "feasibility": "medium",
        "market_potential": "high",
        "innovation_score": 9,
        "market_size": "$4.5B",
        "gap_reason": "Regulatory hurdles and need for clinical validation studies",
    },
    {
        "title": "Smart Urban Farming Pods",
        "description": "Automated vertical farming units for urban apartments that use AI to optimize growing conditions and provide fresh produce year-round with minimal effort.",
        "category": "Products Nobody's Made",
        "feasibility": "high",
        "market_potential": "medium",
        "innovation_score": 7,
        "market_size": "$890M",
        "gap_reason": "High initial cost and consumer education needed",
    },
    {
        "title": "Subscription-Based Car Sharing for Suburbs",
        "description": "Neighborhood-based car sharing service specifically designed for suburban communities where residents share costs and access to vehicles within walking distance.",
        "category": "Business Models",
        "feasibility": "high",
        "market_potential": "medium",
        "innovation_score": 6,
        "market_size": "$1.2B",
        "gap_reason": "Insurance complexity and community coordination challenges",
    },
    {
        "title": "Personal Carbon Offset Marketplace",
        "description": "Platform that automatically calculates your carbon footprint from purchases and travel, then matches you with verified local offset projects you can support.",
        "category": "Tech That's Missing",
        "feasibility": "high",
        "market_potential": "high",
        "innovation_score": 8,
        "market_size": "$3.1B",
        "gap_reason": "Lack of standardized carbon tracking and verification systems",
    },
]


PLAN_SYSTEM_PROMPT = """You are a startup advisor who turns a market gap into a
practical launch roadmap for a small founding team.

Produce four phases in this order: discovery and validation, development and
testing, launch and market entry, growth and scale. Each phase has 2 to 5
concrete tasks a founder can start this week. Estimates use plain durations
such as "3 days", "2 weeks" or "1 month".

Respond with a single JSON object and nothing else:
{"phases": [{"name": "...", "description": "...", "estimatedDuration": "2 weeks",
"tasks": [{"title": "...", "description": "...", "estimatedTime": "3 days",
"resources": ["..."]}]}]}"""

MAX_PLAN_PHASES = 6
MAX_PHASE_TASKS = 8


def starter_plan(gap_title: str) -> Dict[str, Any]:
    """Fixed four-phase plan for when the AI provider is off or its reply is unusable."""
    return {"phases": [
        {
            "name": "Research & Validation",
            "description": f"Confirm that people need {gap_title}.",
            "order": 0,
            "estimated_duration": "2 weeks",
            "tasks": [
                {"title": "Interview 10 potential customers", "estimated_time": "1 week", "resources": []},
                {"title": "Map existing competitors and alternatives", "estimated_time": "3 days", "resources": []},
                {"title": "Estimate market size", "estimated_time": "2 days", "resources": []},
            ],
        },
        {
            "name": "MVP Development",
            "description": "Build the smallest version that proves the core value.",
            "order": 1,
            "estimated_duration": "6 weeks",
            "tasks": [
                {"title": "Define MVP feature set", "estimated_time": "3 days", "resources": []},
                {"title": "Build prototype", "estimated_time": "4 weeks", "resources": []},
                {"title": "Run usability tests", "estimated_time": "1 week", "resources": []},
            ],
        },
        {
            "name": "Launch",
            "description": "Put the product in front of early adopters.",
            "order": 2,
            "estimated_duration": "3 weeks",
            "tasks": [
                {"title": "Prepare launch landing page", "estimated_time": "3 days", "resources": []},
                {"title": "Recruit beta users", "estimated_time": "2 weeks", "resources": []},
            ],
        },
        {
            "name": "Growth",
            "description": "Find repeatable acquisition channels.",
            "order": 3,
            "estimated_duration": "2 months",
            "tasks": [
                {"title": "Test three marketing channels", "estimated_time": "1 month", "resources": []},
                {"title": "Set up retention metrics", "estimated_time": "1 week", "resources": []},
            ],
        },
    ]}


class LLMError(Exception):
    """Raised when the LLM provider fails and no fallback applies."""


class LLMClient:
    """Thin wrapper around the Anthropic Messages API."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        api_key = api_key if api_key is not None else settings.anthropic_api_key
        self.model = model or settings.llm_model
        self.client = Anthropic(api_key=api_key) if api_key else None

    @property
    def is_available(self) -> bool:
        return self.client is not None

    # =========================================================================
    # Gap Analysis
    # =========================================================================

    def analyze_gaps(self, query: str) -> List[Dict[str, Any]]:
        """Find market gaps for a query."""
        if not self.client:
            logger.warning("llm_unavailable_demo_gaps", query_length=len(query))
            return [dict(gap) for gap in DEMO_GAPS]

        try:
            text, usage = self._complete(
                GAP_SYSTEM_PROMPT,
                f'Find {settings.max_gaps_per_search} market gaps for: "{query}"',
                max_tokens=settings.llm_max_tokens,
            )
        except APIError as e:
            logger.error("gap_analysis_failed", error=str(e))
            if settings.is_production:
                raise LLMError(f"Failed to analyze gaps: {e}") from e
            return [self._starter_gap(query)]

        gaps = [normalize_gap(raw) for raw in parse_gap_response(text)]
        logger.info("gap_analysis_completed", gaps=len(gaps), **usage)
        return gaps[: settings.max_gaps_per_search]

    @staticmethod
    def _starter_gap(query: str) -> Dict[str, Any]:
        return {
            "title": f"Starter opportunity: {query}"[:255],
            "description": "Example gap result because the AI provider is unavailable. Configure ANTHROPIC_API_KEY to get real insights.",
            "category": "Tech That's Missing",
            "feasibility": "medium",
            "market_potential": "medium",
            "innovation_score": 6,
            "market_size": "$100M",
            "gap_reason": "Demonstration data path for local development.",
        }

    # =========================================================================
    # Action Plans
    # =========================================================================

    def generate_action_plan(self, query: str, gap: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Phases and tasks for acting on a gap, in the shape ``materialize_phases`` takes.

        Falls back to ``starter_plan`` when the provider is not configured,
        fails, or replies with something that is not a usable plan.
        """
        title = (gap or {}).get("title") or query
        if not self.client:
            logger.warning("llm_unavailable_starter_plan")
            return starter_plan(title)

        details = "\n".join(
            f"{label}: {gap[key]}"
            for key, label in (
                ("title", "Title"),
                ("description", "Description"),
                ("category", "Category"),
                ("market_size", "Market size"),
                ("feasibility", "Feasibility"),
                ("gap_reason", "Why it does not exist yet"),
            )
            if gap and gap.get(key)
        )
        prompt = f'Search: "{query}"\n{details or "Title: " + title}\n\nCreate the four-phase action plan.'

        try:
            text, usage = self._complete(PLAN_SYSTEM_PROMPT, prompt, max_tokens=settings.llm_max_tokens)
            plan = parse_plan_response(text)
        except (APIError, LLMError) as e:
            logger.error("action_plan_generation_failed", error=str(e))
            return starter_plan(title)

        logger.info("action_plan_generated", phases=len(plan["phases"]), **usage)
        return plan

    # =========================================================================
    # Conversations
    # =========================================================================

    def answer_question(self, system_prompt: str, prompt: str) -> Tuple[str, Dict[str, Any]]:
        """Answer a follow-up question. Returns (text, usage)."""
        if not self.client:
            logger.warning("llm_unavailable_offline_reply")
            text = (
                "AI answers are not configured on this server. Based on the analysis "
                "above, start by validating demand with a handful of target customers "
                "before investing in a build."
            )
            return text, {"input_tokens": 0, "output_tokens": 0, "tokens_used": 0, "cost_usd": 0.0, "processing_time_ms": 0}

        try:
            return self._complete(system_prompt, prompt, max_tokens=settings.conversation_max_tokens)
        except APIError as e:
            logger.error("conversation_reply_failed", error=str(e))
            raise LLMError("The AI service is temporarily unavailable. Please try again.") from e

    def _complete(self, system_prompt: str, prompt: str, max_tokens: int) -> Tuple[str, Dict[str, Any]]:
        started = time.perf_counter()
        message = self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            system=system_prompt,
            messages=[{"role": "user", "content": prompt}],
        )

        text = "".join(block.text for block in message.content if getattr(block, "type", "text") == "text")
        input_tokens = message.usage.input_tokens
        output_tokens = message.usage.output_tokens
        usage = {
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "tokens_used": input_tokens + output_tokens,
            "cost_usd": calculate_cost(self.model, input_tokens, output_tokens),
            "processing_time_ms": int((time.perf_counter() - started) * 1000),
        }
        return text, usage


# =============================================================================
# Response Parsing
# =============================================================================

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def parse_gap_response(text: str) -> List[Dict[str, Any]]:
    """Extract the gaps list from a model reply, tolerating code fences."""
    match = _JSON_OBJECT.search(text or "")
    if not match:
        raise LLMError("Empty or non-JSON response from AI provider")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise LLMError(f"Malformed JSON from AI provider: {e}") from e

    gaps = data.get("gaps") if isinstance(data, dict) else None
    if not isinstance(gaps, list):
        raise LLMError("AI response is missing the gaps list")
    return [g for g in gaps if isinstance(g, dict)]


def normalize_gap(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a camelCase model gap into the stored snake_case shape."""
    def rating(value: Any) -> str:
        value = str(value or "").strip().lower()
        return value if value in RATINGS else "medium"

    score = raw.get("innovationScore", raw.get("innovation_score", 5))
    try:
        score = round_half_up(float(score))
    except (TypeError, ValueError):
        score = 5

    return {
        "title": str(raw.get("title", "Untitled opportunity"))[:255],
        "description": str(raw.get("description", "")),
        "category": str(raw.get("category") or GAP_CATEGORIES[0])[:100],
        "feasibility": rating(raw.get("feasibility")),
        "market_potential": rating(raw.get("marketPotential", raw.get("market_potential"))),
        "innovation_score": score,
        "market_size": str(raw.get("marketSize", raw.get("market_size", "Unknown")))[:100],
        "gap_reason": str(raw.get("gapReason", raw.get("gap_reason", ""))),
    }


def _text(value: Any, limit: Optional[int] = None) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)[:limit] if limit else str(value)


def parse_plan_response(text: str) -> Dict[str, Any]:
    """Extract and normalise a plan from a model reply.

    Phases without a name and tasks without a title are dropped; a reply
    with no phase left raises ``LLMError``.
    """
    match = _JSON_OBJECT.search(text or "")
    if not match:
        raise LLMError("Empty or non-JSON plan from AI provider")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise LLMError(f"Malformed plan JSON from AI provider: {e}") from e

    raw_phases = data.get("phases") if isinstance(data, dict) else None
    if not isinstance(raw_phases, list):
        raise LLMError("AI plan is missing the phases list")

    phases = []
    for raw in raw_phases[:MAX_PLAN_PHASES]:
        if not isinstance(raw, dict) or not str(raw.get("name") or "").strip():
            continue
        raw_tasks = raw.get("tasks") if isinstance(raw.get("tasks"), list) else []
        tasks = [
            {
                "title": str(task["title"]).strip()[:200],
                "description": _text(task.get("description")),
                "estimated_time": _text(task.get("estimatedTime", task.get("estimated_time")), 50),
                "resources": [str(r) for r in task["resources"] if r] if isinstance(task.get("resources"), list) else [],
            }
            for task in raw_tasks[:MAX_PHASE_TASKS]
            if isinstance(task, dict) and str(task.get("title") or "").strip()
        ]
        if not tasks:
            continue
        phases.append({
            "name": str(raw["name"]).strip()[:100],
            "description": _text(raw.get("description")),
            "order": len(phases),
            "estimated_duration": _text(raw.get("estimatedDuration", raw.get("estimated_duration")), 50),
            "tasks": tasks,
        })

    if not phases:
        raise LLMError("AI plan has no usable phases")
    return {"phases": phases}


_llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Get the global LLM client."""
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client

"""Suggested questions for analysis conversations.

Initial suggestions are drawn from fixed per-category lists and ranked by
what the analysis looks like (innovation score, feasibility, competitors).
Follow-ups come from a wider template pool, skipping questions close to ones
the user already asked and favouring categories the conversation has not
touched yet.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

CATEGORIES = [
    "market_validation",
    "competitive_analysis",
    "execution_strategy",
    "risk_assessment",
]

SUGGESTION_COUNT = 5
DUPLICATE_SIMILARITY = 0.5
HISTORY_OVERLAP = 0.5
HEAVILY_DISCUSSED = 3

QUESTION_TEMPLATES: Dict[str, List[str]] = {
    "market_validation": [
        "What evidence supports the market demand for {gap}?",
        "Who are the early adopters most likely to try {gap}?",
        "What market trends make {gap} timely right now?",
        "How large is the addressable market for {gap}?",
        "What customer pain points does {gap} solve?",
        "How would you validate demand for {gap} before building?",
        "What pricing model would work best for {gap}?",
        "Which geographic markets should be targeted first for {gap}?",
    ],
    "competitive_analysis": [
        "Why haven't existing competitors addressed {gap}?",
        "What would be my unique competitive advantage with {gap}?",
        "Which competitor poses the biggest threat to {gap}?",
        "How defensible is the position for {gap}?",
        "What barriers to entry exist for {gap}?",
        "How would incumbents likely respond to {gap}?",
        "What partnerships could strengthen {gap}?",
        "What intellectual property considerations exist for {gap}?",
    ],
    "execution_strategy": [
        "What should be my first step to validate {gap}?",
        "What resources would I need to get started with {gap}?",
        "What's the minimum viable product for {gap}?",
        "How long would it take to launch {gap}?",
        "What team composition is needed for {gap}?",
        "What technology stack would work best for {gap}?",
        "How should I prioritize features for {gap}?",
        "What metrics should I track for {gap}?",
    ],
    "risk_assessment": [
        "What are the biggest risks I should prepare for with {gap}?",
        "What regulatory challenges might {gap} face?",
        "What could cause {gap} to fail?",
        "How capital-intensive is {gap}?",
        "What market conditions could negatively impact {gap}?",
        "What technical risks exist for {gap}?",
        "How dependent is {gap} on external factors?",
        "What's the worst-case scenario for {gap}?",
    ],
}

INITIAL_QUESTIONS: Dict[str, List[str]] = {
    "market_validation": [
        "What evidence supports the market demand for this opportunity?",
        "Who are the early adopters most likely to try this?",
        "What market trends make this opportunity timely?",
    ],
    "competitive_analysis": [
        "Why haven't existing competitors addressed this gap?",
        "What would be my unique competitive advantage?",
        "Which competitor poses the biggest threat?",
    ],
    "execution_strategy": [
        "What should be my first step to validate this idea?",
        "What resources would I need to get started?",
        "What are the biggest risks I should prepare for?",
    ],
    "risk_assessment": [
        "What could cause this opportunity to fail?",
        "What regulatory challenges might I face?",
        "How capital-intensive is this opportunity?",
    ],
}

BASE_PRIORITIES = {
    "market_validation": 80,
    "competitive_analysis": 70,
    "execution_strategy": 75,
    "risk_assessment": 65,
}

TOPIC_KEYWORDS = {
    "market_validation": ["market", "demand", "customer", "audience", "pricing", "revenue"],
    "competitive_analysis": ["competitor", "competition", "advantage", "differentiation", "threat"],
    "execution_strategy": ["build", "launch", "mvp", "team", "resource", "timeline", "feature"],
    "risk_assessment": ["risk", "challenge", "fail", "regulatory", "capital", "worst"],
}


@dataclass
class AnalysisData:
    query: str
    innovation_score: Optional[float] = None
    feasibility_rating: Optional[str] = None
    top_gaps: List[Dict[str, Any]] = field(default_factory=list)
    competitors: List[str] = field(default_factory=list)

    @property
    def gap_title(self) -> str:
        if self.top_gaps and self.top_gaps[0].get("title"):
            return self.top_gaps[0]["title"]
        return "this opportunity"


@dataclass
class GeneratedQuestion:
    text: str
    category: str
    priority: int
    relevance_score: float = 0


def category_priority(category: str, analysis: AnalysisData) -> int:
    priority = BASE_PRIORITIES[category]
    if category == "market_validation" and (analysis.innovation_score or 0) > 80:
        priority += 10
    elif category == "competitive_analysis" and len(analysis.competitors) > 3:
        priority += 10
    elif category == "execution_strategy" and analysis.feasibility_rating == "high":
        priority += 10
    elif category == "risk_assessment" and analysis.feasibility_rating == "low":
        priority += 15
    return priority


def relevance_score(category: str, analysis: AnalysisData) -> float:
    score = 50.0
    if category == "market_validation":
        score += (analysis.innovation_score or 50) * 0.3
    elif category == "competitive_analysis":
        score += min(30, len(analysis.competitors) * 5)
    elif category == "execution_strategy":
        score += {"high": 20, "medium": 10}.get(analysis.feasibility_rating or "", 0)
    elif category == "risk_assessment" and analysis.feasibility_rating == "low":
        score += 25
    return min(100.0, score)


def generate_initial_questions(analysis: AnalysisData) -> List[GeneratedQuestion]:
    questions = []
    for category in CATEGORIES:
        count = 1
        if category == "market_validation":
            count = 2
        elif category == "risk_assessment" and analysis.feasibility_rating == "low":
            count = 2

        selected = INITIAL_QUESTIONS[category][:count]
        for position, text in enumerate(selected):
            questions.append(GeneratedQuestion(
                text=text,
                category=category,
                priority=category_priority(category, analysis) + (len(selected) - position) * 5,
                relevance_score=relevance_score(category, analysis),
            ))

    questions.sort(key=lambda q: q.priority, reverse=True)
    return questions[:SUGGESTION_COUNT]


def discussed_topics(messages: Iterable[Any]) -> Dict[str, int]:
    """Keyword hit counts per category across every message."""
    topics = {category: 0 for category in CATEGORIES}
    for message in messages:
        content = message.content.lower()
        for category, words in TOPIC_KEYWORDS.items():
            topics[category] += sum(1 for word in words if word in content)
    return topics


def follow_up_priority(category: str, analysis: AnalysisData, topics: Dict[str, int]) -> int:
    priority = category_priority(category, analysis) - topics[category] * 10
    if sum(topics.values()) > 0 and topics[category] == 0:
        priority += 15
    return max(0, min(100, priority))


def _long_words(text: str) -> set:
    return {w for w in text.lower().split() if len(w) > 3}


def similar_to_history(question: str, messages: Sequence[Any]) -> bool:
    question_words = _long_words(question)
    for message in messages:
        if message.role != "user":
            continue
        message_words = _long_words(message.content)
        largest = max(len(question_words), len(message_words))
        if largest and len(question_words & message_words) / largest > HISTORY_OVERLAP:
            return True
    return False


def generate_follow_up_questions(analysis: AnalysisData, messages: Sequence[Any]) -> List[GeneratedQuestion]:
    topics = discussed_topics(messages)
    questions = []

    for category in CATEGORIES:
        if topics[category] > HEAVILY_DISCUSSED:
            continue
        unused = [
            text for text in (t.replace("{gap}", analysis.gap_title) for t in QUESTION_TEMPLATES[category])
            if not similar_to_history(text, messages)
        ]
        priority = follow_up_priority(category, analysis, topics)
        for text in unused[:2]:
            questions.append(GeneratedQuestion(text, category, priority, priority))

    questions.sort(key=lambda q: q.priority, reverse=True)
    return questions[:SUGGESTION_COUNT]


def _question_words(text: str) -> set:
    return {w for w in re.sub(r"[^\w\s]", "", text.lower()).split() if len(w) > 3}


def are_similar_questions(a: str, b: str) -> bool:
    words_a, words_b = _question_words(a), _question_words(b)
    union = words_a | words_b
    return bool(union) and len(words_a & words_b) / len(union) >= DUPLICATE_SIMILARITY


def deduplicate_questions(questions: Iterable[GeneratedQuestion]) -> List[GeneratedQuestion]:
    unique: List[GeneratedQuestion] = []
    for question in questions:
        if not any(are_similar_questions(question.text, kept.text) for kept in unique):
            unique.append(question)
    return unique


def filter_existing_questions(questions: Iterable[GeneratedQuestion], existing: Iterable[str]) -> List[GeneratedQuestion]:
    existing = list(existing)
    return [q for q in questions if not any(are_similar_questions(q.text, text) for text in existing)]

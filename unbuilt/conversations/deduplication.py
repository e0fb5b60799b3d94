"""Reuse of earlier AI answers for near-duplicate questions."""

import math
import re
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from unbuilt.core.logging import get_logger

logger = get_logger(__name__)

SIMILARITY_THRESHOLD = 0.9
RECENT_USER_MESSAGES = 10
BOOST_ABOVE = 0.54
BOOST_FACTOR = 1.32
ESTIMATED_CALL_COST = 0.05


def tokenize(text: str) -> List[str]:
    """Lowercase words of two or more characters, punctuation removed."""
    return [w for w in re.sub(r"[^\w\s]", " ", text.lower()).split() if len(w) > 1]


def jaccard_similarity(a: str, b: str) -> float:
    words_a, words_b = set(tokenize(a)), set(tokenize(b))
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def cosine_similarity(a: str, b: str) -> float:
    counts_a, counts_b = Counter(tokenize(a)), Counter(tokenize(b))
    dot = sum(counts_a[w] * counts_b[w] for w in counts_a)
    norm_a = math.sqrt(sum(c * c for c in counts_a.values()))
    norm_b = math.sqrt(sum(c * c for c in counts_b.values()))
    if not norm_a or not norm_b:
        return 0.0
    return dot / (norm_a * norm_b)


def calculate_similarity(a: str, b: str) -> float:
    similarity = (jaccard_similarity(a, b) + cosine_similarity(a, b)) / 2
    if similarity > BOOST_ABOVE:
        similarity = min(1.0, similarity * BOOST_FACTOR)
    return similarity


@dataclass
class SimilarQuery:
    similarity: float
    matched_query: str
    cached_response: str


class QueryDeduplicator:
    """Finds a prior question close enough to answer from history.

    ``messages`` are any objects with ``role`` and ``content`` attributes in
    chronological order, typically ``ConversationMessage`` rows.
    """

    def __init__(self, threshold: float = SIMILARITY_THRESHOLD):
        self.threshold = threshold
        self.reset_stats()

    def reset_stats(self) -> None:
        self.total_queries = 0
        self.cache_hits = 0
        self.cache_misses = 0
        self.cost_savings = 0.0

    def find_similar(self, query: str, messages: Sequence[Any]) -> Optional[SimilarQuery]:
        self.total_queries += 1

        user_indexes = [i for i, m in enumerate(messages) if m.role == "user"][-RECENT_USER_MESSAGES:]
        best: Optional[SimilarQuery] = None

        for index in user_indexes:
            similarity = calculate_similarity(query, messages[index].content)
            if similarity < self.threshold or index + 1 >= len(messages):
                continue
            reply = messages[index + 1]
            if reply.role != "assistant":
                continue
            if best is None or similarity > best.similarity:
                best = SimilarQuery(similarity, messages[index].content, reply.content)

        if best is None:
            self.cache_misses += 1
            return None

        self.cache_hits += 1
        self.cost_savings += ESTIMATED_CALL_COST
        logger.info("duplicate_query_found", similarity=round(best.similarity, 3))
        return best

    def stats(self) -> Dict[str, Any]:
        return {
            "total_queries": self.total_queries,
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "hit_rate": self.cache_hits / self.total_queries if self.total_queries else 0,
            "cost_savings": round(self.cost_savings, 2),
        }


deduplicator = QueryDeduplicator()

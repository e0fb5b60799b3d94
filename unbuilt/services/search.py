"""Market gap searches: run, filter, persist and read back."""

from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from unbuilt.core.cache import cache
from unbuilt.core.errors import NotFoundError, ValidationFailed
from unbuilt.core.logging import get_logger
from unbuilt.core.models import Search, SearchResult, User
from unbuilt.services.llm import get_llm_client
from unbuilt.services.progress import round_half_up
from unbuilt.services.usage import consume_search

logger = get_logger(__name__)

FEASIBILITY_SCORES = {"high": 80, "medium": 50, "low": 20}
DEFAULT_FEASIBILITY_SCORE = 50
SIZE_RANK = {"large": 3, "medium": 2, "small": 1}
FEASIBILITY_RANK = {"high": 3, "medium": 2, "low": 1}
DEFAULT_INNOVATION_SCORE = 50
MAX_QUERY_LENGTH = 2000


# =============================================================================
# Filtering
# =============================================================================

def _bounds(bounds: Optional[dict]) -> tuple:
    bounds = bounds or {}
    return bounds.get("min", 0), bounds.get("max", 100)


def _matches_any(value: Optional[str], needles: List[str]) -> bool:
    value = (value or "").lower()
    return any(str(needle).lower() in value for needle in needles)


def _sort_key(sort_by: str):
    """Numeric key for a sort_by value. Unknown values sort by model confidence."""
    if sort_by == "innovation":
        return lambda r: r.get("innovation_score") or 0
    if sort_by in ("market_size", "marketSize"):
        return lambda r: SIZE_RANK.get(str(r.get("market_size") or "medium").lower(), 2)
    if sort_by == "feasibility":
        return lambda r: FEASIBILITY_RANK.get(str(r.get("feasibility", "")).lower(), 2)
    return lambda r: r.get("confidence_score") or 0


def apply_search_filters(results: List[Dict[str, Any]], filters: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Filter gap dicts by category, innovation, market size, feasibility,
    potential and keywords, then optionally sort.

    Every filter is optional; an empty list or missing key leaves results
    untouched. ``sort_by`` is one of innovation, market_size, feasibility or
    score, descending unless ``sort_order`` is "asc". Ties keep model order.
    """
    if not filters:
        return list(results)

    filtered = list(results)

    categories = filters.get("categories") or []
    if categories:
        filtered = [r for r in filtered if _matches_any(r.get("category"), categories)]

    if filters.get("innovation_score"):
        low, high = _bounds(filters["innovation_score"])
        filtered = [
            r for r in filtered
            if low <= (r.get("innovation_score") if r.get("innovation_score") is not None else DEFAULT_INNOVATION_SCORE) <= high
        ]

    market_sizes = filters.get("market_size") or []
    if market_sizes:
        filtered = [r for r in filtered if _matches_any(r.get("market_size"), market_sizes)]

    if filters.get("feasibility_score"):
        low, high = _bounds(filters["feasibility_score"])
        filtered = [
            r for r in filtered
            if low <= FEASIBILITY_SCORES.get(str(r.get("feasibility", "")).lower(), DEFAULT_FEASIBILITY_SCORE) <= high
        ]

    potentials = filters.get("market_potential") or []
    if potentials:
        filtered = [r for r in filtered if _matches_any(r.get("market_potential"), potentials)]

    keywords = filters.get("keywords") or []
    if keywords:
        filtered = [
            r for r in filtered
            if _matches_any(f"{r.get('title', '')} {r.get('description', '')} {r.get('gap_reason', '')}", keywords)
        ]

    if filters.get("sort_by"):
        filtered.sort(key=_sort_key(filters["sort_by"]), reverse=filters.get("sort_order") != "asc")

    return filtered


# =============================================================================
# Running Searches
# =============================================================================

def run_search(db: Session, user: User, query: str, filters: Optional[Dict[str, Any]] = None) -> Search:
    """Run a gap search for a user and persist it with its results."""
    query = (query or "").strip()
    if not query:
        raise ValidationFailed("Search query cannot be empty")
    if len(query) > MAX_QUERY_LENGTH:
        raise ValidationFailed(f"Search query exceeds maximum length of {MAX_QUERY_LENGTH} characters")

    filters = filters or {}
    consume_search(user)

    gaps = cache.get_gap_analysis(query)
    if gaps is None:
        gaps = get_llm_client().analyze_gaps(query)
        cache.set_gap_analysis(query, None, gaps)
    else:
        logger.info("gap_analysis_cache_hit", user_id=str(user.id))

    gaps = apply_search_filters(gaps, filters)

    search = Search(user_id=user.id, query=query, filters=filters, results_count=len(gaps))
    db.add(search)
    db.flush()

    for gap in gaps:
        db.add(SearchResult(
            search_id=search.id,
            title=gap["title"],
            description=gap["description"],
            category=gap["category"],
            feasibility=gap["feasibility"],
            market_potential=gap["market_potential"],
            innovation_score=round_half_up(gap.get("innovation_score") or 0),
            market_size=gap["market_size"],
            gap_reason=gap["gap_reason"],
        ))
    db.flush()
    db.refresh(search)

    logger.info(
        "search_completed",
        search_id=str(search.id),
        user_id=str(user.id),
        results=len(gaps),
        filtered=bool(filters),
    )
    return search


# =============================================================================
# Reads
# =============================================================================

def get_search(db: Session, search_id: UUID, user_id: UUID) -> Search:
    search = db.query(Search).filter(Search.id == search_id, Search.user_id == user_id).first()
    if not search:
        raise NotFoundError("Search not found")
    return search


def get_search_results(db: Session, search_id: UUID, user_id: UUID) -> List[SearchResult]:
    return list(get_search(db, search_id, user_id).results)


def list_user_searches(db: Session, user_id: UUID, limit: int = 50) -> List[Search]:
    return (
        db.query(Search)
        .filter(Search.user_id == user_id)
        .order_by(Search.created_at.desc())
        .limit(limit)
        .all()
    )


def _owned_result(db: Session, result_id: UUID, user_id: UUID) -> SearchResult:
    result = (
        db.query(SearchResult)
        .join(Search, SearchResult.search_id == Search.id)
        .filter(SearchResult.id == result_id, Search.user_id == user_id)
        .first()
    )
    if not result:
        raise NotFoundError("Result not found")
    return result


def toggle_saved(db: Session, result_id: UUID, user_id: UUID, is_saved: Optional[bool] = None) -> SearchResult:
    """Set or flip the saved flag on a result."""
    result = _owned_result(db, result_id, user_id)
    result.is_saved = (not result.is_saved) if is_saved is None else is_saved
    db.flush()
    return result


def list_saved_results(db: Session, user_id: UUID) -> List[SearchResult]:
    return (
        db.query(SearchResult)
        .join(Search, SearchResult.search_id == Search.id)
        .filter(Search.user_id == user_id, SearchResult.is_saved == True)
        .order_by(SearchResult.created_at.desc())
        .all()
    )

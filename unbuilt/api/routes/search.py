"""Gap searches, their results and saved results."""

from typing import List

from fastapi import APIRouter, Depends, Query

from unbuilt.api.deps import load_user, parse_uuid
from unbuilt.api.schemas import (
    SaveResultRequest, SearchRequest, SearchResponse, SearchResultResponse, SearchWithResultsResponse,
    result_to_response, search_to_response,
)
from unbuilt.core.auth import AuthContext, get_current_auth
from unbuilt.core.database import get_db
from unbuilt.services import search as search_service
from unbuilt.services.usage import remaining_searches

router = APIRouter(tags=["search"])


@router.post("/api/search")
async def create_search(body: SearchRequest, auth: AuthContext = Depends(get_current_auth)):
    """Run a gap analysis. Counts against the monthly search quota."""
    with get_db() as db:
        user = load_user(db, auth)
        search = search_service.run_search(db, user, body.query, body.filters)
        return {
            "search": search_to_response(search, include_results=True),
            "remaining_searches": remaining_searches(user),
        }


@router.get("/api/searches", response_model=List[SearchResponse])
async def list_searches(
    limit: int = Query(50, ge=1, le=100),
    auth: AuthContext = Depends(get_current_auth),
):
    with get_db() as db:
        searches = search_service.list_user_searches(db, auth.user_uuid, limit=limit)
        return [search_to_response(s) for s in searches]


@router.get("/api/searches/{search_id}", response_model=SearchWithResultsResponse)
async def get_search(search_id: str, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        search = search_service.get_search(db, parse_uuid(search_id, "search"), auth.user_uuid)
        return search_to_response(search, include_results=True)


@router.get("/api/searches/{search_id}/results", response_model=List[SearchResultResponse])
async def get_search_results(search_id: str, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        results = search_service.get_search_results(db, parse_uuid(search_id, "search"), auth.user_uuid)
        return [result_to_response(r) for r in results]


@router.get("/api/results/saved", response_model=List[SearchResultResponse])
async def list_saved(auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        return [result_to_response(r) for r in search_service.list_saved_results(db, auth.user_uuid)]


@router.patch("/api/results/{result_id}/save", response_model=SearchResultResponse)
async def save_result(
    result_id: str,
    body: SaveResultRequest = SaveResultRequest(),
    auth: AuthContext = Depends(get_current_auth),
):
    """Set the saved flag, or flip it when ``is_saved`` is omitted."""
    with get_db() as db:
        result = search_service.toggle_saved(db, parse_uuid(result_id, "result"), auth.user_uuid, body.is_saved)
        return result_to_response(result)

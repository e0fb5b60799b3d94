"""Resource library: browsing, bookmarks, ratings and community contributions."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response

from unbuilt.api.deps import parse_optional_uuid, parse_uuid
from unbuilt.api.schemas import (
    AccessRequest, BookmarkRequest, BookmarkResponse, CategoryCreate, ContributionCreate,
    ContributionResponse, ContributionReview, RatingRequest, RatingResponse, ResourceCreate,
    ResourceUpdate, bookmark_to_response, contribution_to_response, rating_to_response,
)
from unbuilt.core.auth import AuthContext, get_current_auth, require_admin
from unbuilt.core.database import get_db
from unbuilt.services import ResourceService
from unbuilt.services.resources import resource_dict

router = APIRouter(prefix="/api/resources", tags=["resources"])


def _split(value: Optional[str]) -> Optional[List[str]]:
    if not value:
        return None
    return [part.strip() for part in value.split(",") if part.strip()]


# =============================================================================
# Browsing
# =============================================================================

@router.get("")
async def list_resources(
    category: Optional[str] = Query(None, description="Comma-separated category ids"),
    phase: Optional[str] = Query(None, description="Comma-separated phases"),
    idea_type: Optional[str] = Query(None, description="Comma-separated idea types"),
    resource_type: Optional[str] = Query(None, description="Comma-separated resource types"),
    min_rating: Optional[float] = Query(None, ge=0, le=5),
    is_premium: Optional[bool] = None,
    search: Optional[str] = Query(None, max_length=200),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort_by: str = Query("recent", pattern="^(rating|recent|popular|title)$"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    auth: AuthContext = Depends(get_current_auth),
):
    category_ids = [parse_uuid(c, "category") for c in _split(category) or []]
    with get_db() as db:
        listing = ResourceService(db).list_resources(
            category_ids=category_ids or None,
            phases=_split(phase),
            idea_types=_split(idea_type),
            resource_types=_split(resource_type),
            min_rating=min_rating,
            is_premium=is_premium,
            search=search,
            page=page,
            limit=limit,
            sort_by=sort_by,
            sort_order=sort_order,
        )
        return {**listing, "resources": [resource_dict(r) for r in listing["resources"]]}


@router.get("/categories")
async def category_tree(auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        return ResourceService(db).get_category_tree()


@router.post("/categories", status_code=201)
async def create_category(body: CategoryCreate, auth: AuthContext = Depends(require_admin)):
    with get_db() as db:
        category = ResourceService(db).create_category(
            name=body.name,
            description=body.description,
            icon=body.icon,
            display_order=body.display_order,
            parent_id=parse_optional_uuid(body.parent_id, "category"),
        )
        return {"id": str(category.id), "name": category.name, "slug": category.slug}


@router.get("/tags")
async def list_tags(limit: int = Query(50, ge=1, le=200), auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        return [
            {"id": str(t.id), "name": t.name, "slug": t.slug, "usage_count": t.usage_count}
            for t in ResourceService(db).list_tags(limit)
        ]


@router.get("/history")
async def access_history(limit: int = Query(50, ge=1, le=200), auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        return [
            {
                "resource_id": str(a.resource_id),
                "analysis_id": str(a.analysis_id) if a.analysis_id else None,
                "access_type": a.access_type,
                "accessed_at": a.accessed_at.isoformat(),
            }
            for a in ResourceService(db).get_access_history(auth.user_uuid, limit)
        ]


# =============================================================================
# Bookmarks
# =============================================================================

@router.get("/bookmarks", response_model=List[BookmarkResponse])
async def list_bookmarks(auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        return [bookmark_to_response(b, include_resource=True) for b in ResourceService(db).list_bookmarks(auth.user_uuid)]


@router.post("/{resource_id}/bookmark", response_model=BookmarkResponse, status_code=201)
async def add_bookmark(
    resource_id: str,
    body: BookmarkRequest = BookmarkRequest(),
    auth: AuthContext = Depends(get_current_auth),
):
    with get_db() as db:
        bookmark = ResourceService(db).add_bookmark(
            auth.user_uuid, parse_uuid(resource_id, "resource"), body.notes, body.custom_tags,
        )
        return bookmark_to_response(bookmark)


@router.patch("/{resource_id}/bookmark", response_model=BookmarkResponse)
async def update_bookmark(resource_id: str, body: BookmarkRequest, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        bookmark = ResourceService(db).update_bookmark(
            auth.user_uuid, parse_uuid(resource_id, "resource"), body.notes, body.custom_tags,
        )
        return bookmark_to_response(bookmark)


@router.delete("/{resource_id}/bookmark", status_code=204)
async def remove_bookmark(resource_id: str, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        ResourceService(db).remove_bookmark(auth.user_uuid, parse_uuid(resource_id, "resource"))
    return Response(status_code=204)


# =============================================================================
# Contributions
# =============================================================================

@router.post("/contributions", response_model=ContributionResponse, status_code=201)
async def submit_contribution(body: ContributionCreate, auth: AuthContext = Depends(get_current_auth)):
    """Suggest a resource. It is published once an admin approves it."""
    with get_db() as db:
        contribution = ResourceService(db).submit_contribution(
            auth.user_uuid,
            body.title,
            body.description,
            body.url,
            suggested_category_id=parse_optional_uuid(body.suggested_category_id, "category"),
            suggested_tags=body.suggested_tags,
        )
        return contribution_to_response(contribution)


@router.get("/contributions/mine", response_model=List[ContributionResponse])
async def my_contributions(auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        return [contribution_to_response(c) for c in ResourceService(db).list_user_contributions(auth.user_uuid)]


@router.get("/contributions/pending", response_model=List[ContributionResponse])
async def pending_contributions(auth: AuthContext = Depends(require_admin)):
    with get_db() as db:
        return [contribution_to_response(c) for c in ResourceService(db).list_pending_contributions()]


@router.post("/contributions/{contribution_id}/approve", status_code=201)
async def approve_contribution(
    contribution_id: str,
    body: ContributionReview = ContributionReview(),
    auth: AuthContext = Depends(require_admin),
):
    with get_db() as db:
        resource = ResourceService(db).approve_contribution(
            parse_uuid(contribution_id, "contribution"), auth.user_uuid, body.resource, body.admin_notes,
        )
        return resource_dict(resource)


@router.post("/contributions/{contribution_id}/reject", response_model=ContributionResponse)
async def reject_contribution(
    contribution_id: str,
    body: ContributionReview = ContributionReview(),
    auth: AuthContext = Depends(require_admin),
):
    with get_db() as db:
        contribution = ResourceService(db).reject_contribution(
            parse_uuid(contribution_id, "contribution"), auth.user_uuid, body.admin_notes,
        )
        return contribution_to_response(contribution)


# =============================================================================
# Ratings
# =============================================================================

@router.post("/ratings/{rating_id}/helpful", response_model=RatingResponse)
async def mark_helpful(rating_id: str, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        return rating_to_response(ResourceService(db).mark_rating_helpful(parse_uuid(rating_id, "rating")))


@router.get("/{resource_id}/ratings", response_model=List[RatingResponse])
async def list_ratings(
    resource_id: str,
    sort_by: str = Query("recent", pattern="^(recent|helpful)$"),
    limit: int = Query(20, ge=1, le=100),
    auth: AuthContext = Depends(get_current_auth),
):
    with get_db() as db:
        ratings = ResourceService(db).list_ratings(parse_uuid(resource_id, "resource"), sort_by, limit)
        return [rating_to_response(r) for r in ratings]


@router.get("/{resource_id}/ratings/stats")
async def rating_stats(resource_id: str, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        return ResourceService(db).get_rating_stats(parse_uuid(resource_id, "resource"))


@router.post("/{resource_id}/ratings", response_model=RatingResponse)
async def rate_resource(resource_id: str, body: RatingRequest, auth: AuthContext = Depends(get_current_auth)):
    """Create or replace the user's rating for a resource."""
    with get_db() as db:
        rating = ResourceService(db).rate_resource(
            auth.user_uuid, parse_uuid(resource_id, "resource"), body.rating, body.review,
        )
        return rating_to_response(rating)


# =============================================================================
# Single Resources
# =============================================================================

@router.get("/{resource_id}")
async def get_resource(resource_id: str, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        return resource_dict(ResourceService(db).get_resource(parse_uuid(resource_id, "resource")))


@router.post("/{resource_id}/access", status_code=201)
async def track_access(resource_id: str, body: AccessRequest = AccessRequest(), auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        access = ResourceService(db).track_access(
            auth.user_uuid,
            parse_uuid(resource_id, "resource"),
            body.access_type,
            parse_optional_uuid(body.analysis_id, "analysis"),
        )
        return {"id": str(access.id), "access_type": access.access_type}


@router.post("", status_code=201)
async def create_resource(body: ResourceCreate, auth: AuthContext = Depends(require_admin)):
    data = body.model_dump(exclude={"tags"})
    data["category_id"] = parse_optional_uuid(body.category_id, "category")
    with get_db() as db:
        resource = ResourceService(db).create_resource(data, created_by=auth.user_uuid, tags=body.tags)
        return resource_dict(resource)


@router.patch("/{resource_id}")
async def update_resource(resource_id: str, body: ResourceUpdate, auth: AuthContext = Depends(require_admin)):
    updates = body.model_dump(exclude_unset=True)
    if "category_id" in updates:
        updates["category_id"] = parse_optional_uuid(updates["category_id"], "category")
    with get_db() as db:
        return resource_dict(ResourceService(db).update_resource(parse_uuid(resource_id, "resource"), updates))


@router.delete("/{resource_id}", status_code=204)
async def delete_resource(resource_id: str, auth: AuthContext = Depends(require_admin)):
    with get_db() as db:
        ResourceService(db).delete_resource(parse_uuid(resource_id, "resource"))
    return Response(status_code=204)

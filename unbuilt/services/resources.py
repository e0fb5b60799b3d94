"""Resource library: browsing, bookmarks, ratings, access tracking and contributions.

Ratings are stored per user and rolled up onto the resource as
``average_rating`` (mean x 100, floored) and ``rating_count``.
"""

import math
import re
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from unbuilt.core.errors import ConflictError, NotFoundError, ValidationFailed
from unbuilt.core.logging import get_logger
from unbuilt.core.models import (
    ContributionStatus, Resource, ResourceAccess, ResourceCategory,
    ResourceContribution, ResourceRating, ResourceTag, UserBookmark,
)
from unbuilt.services.progress import round_half_up

logger = get_logger(__name__)

ACCESS_TYPES = ("view", "download", "external_link")
SORT_COLUMNS = {
    "rating": Resource.average_rating,
    "popular": Resource.view_count,
    "title": Resource.title,
    "recent": Resource.created_at,
}
RESOURCE_FIELDS = (
    "title", "description", "url", "resource_type", "category_id", "phase_relevance",
    "idea_types", "difficulty_level", "estimated_time_minutes", "is_premium", "is_active",
    "resource_metadata",
)
MAX_PAGE_SIZE = 100


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def resource_dict(resource: Resource) -> Dict[str, Any]:
    return {
        "id": str(resource.id),
        "title": resource.title,
        "description": resource.description,
        "url": resource.url,
        "resource_type": resource.resource_type,
        "category": {"id": str(resource.category.id), "name": resource.category.name, "slug": resource.category.slug}
        if resource.category else None,
        "tags": [{"id": str(t.id), "name": t.name, "slug": t.slug} for t in resource.tags],
        "phase_relevance": list(resource.phase_relevance or []),
        "idea_types": list(resource.idea_types or []),
        "difficulty_level": resource.difficulty_level,
        "estimated_time_minutes": resource.estimated_time_minutes,
        "is_premium": resource.is_premium,
        "average_rating": resource.average_rating / 100,
        "rating_count": resource.rating_count,
        "view_count": resource.view_count,
        "bookmark_count": resource.bookmark_count,
        "created_at": resource.created_at.isoformat() if resource.created_at else None,
    }


class ResourceService:
    """Resource library operations for one database session."""

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # Categories and Tags
    # =========================================================================

    def get_category_tree(self) -> List[Dict[str, Any]]:
        categories = self.db.query(ResourceCategory).order_by(
            ResourceCategory.display_order, ResourceCategory.name
        ).all()
        nodes = {
            c.id: {
                "id": str(c.id),
                "name": c.name,
                "slug": c.slug,
                "description": c.description,
                "icon": c.icon,
                "children": [],
            }
            for c in categories
        }
        roots = []
        for c in categories:
            if c.parent_id and c.parent_id in nodes:
                nodes[c.parent_id]["children"].append(nodes[c.id])
            else:
                roots.append(nodes[c.id])
        return roots

    def create_category(self, name: str, description: Optional[str] = None, icon: Optional[str] = None,
                        display_order: int = 0, parent_id: Optional[UUID] = None) -> ResourceCategory:
        slug = slugify(name)
        if self.db.query(ResourceCategory).filter(
            or_(ResourceCategory.name == name, ResourceCategory.slug == slug)
        ).first():
            raise ConflictError(f"Category '{name}' already exists")
        category = ResourceCategory(
            name=name, slug=slug, description=description, icon=icon,
            display_order=display_order, parent_id=parent_id,
        )
        self.db.add(category)
        self.db.flush()
        return category

    def list_tags(self, limit: int = 50) -> List[ResourceTag]:
        return self.db.query(ResourceTag).order_by(ResourceTag.usage_count.desc(), ResourceTag.name).limit(limit).all()

    def get_or_create_tag(self, name: str) -> ResourceTag:
        slug = slugify(name)
        tag = self.db.query(ResourceTag).filter(ResourceTag.slug == slug).first()
        if not tag:
            tag = ResourceTag(name=name[:50], slug=slug[:50], usage_count=0)
            self.db.add(tag)
            self.db.flush()
        return tag

    def assign_tags(self, resource: Resource, names: List[str]) -> None:
        for name in names:
            if not name or not name.strip():
                continue
            tag = self.get_or_create_tag(name.strip())
            if tag not in resource.tags:
                resource.tags.append(tag)
                tag.usage_count += 1
        self.db.flush()

    # =========================================================================
    # Resources
    # =========================================================================

    def list_resources(
        self,
        category_ids: Optional[List[UUID]] = None,
        phases: Optional[List[str]] = None,
        idea_types: Optional[List[str]] = None,
        resource_types: Optional[List[str]] = None,
        min_rating: Optional[float] = None,
        is_premium: Optional[bool] = None,
        is_active: Optional[bool] = True,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "recent",
        sort_order: str = "desc",
    ) -> Dict[str, Any]:
        """Filtered, sorted, paginated resource listing."""
        if page < 1:
            raise ValidationFailed("Page must be 1 or greater")
        limit = max(1, min(limit, MAX_PAGE_SIZE))

        query = self.db.query(Resource)
        if is_active is not None:
            query = query.filter(Resource.is_active == is_active)
        if category_ids:
            query = query.filter(Resource.category_id.in_(category_ids))
        if resource_types:
            query = query.filter(Resource.resource_type.in_(resource_types))
        if is_premium is not None:
            query = query.filter(Resource.is_premium == is_premium)
        if min_rating is not None:
            query = query.filter(Resource.average_rating >= math.floor(min_rating * 100))
        if search and search.strip():
            for term in search.split():
                pattern = f"%{term}%"
                query = query.filter(or_(Resource.title.ilike(pattern), Resource.description.ilike(pattern)))

        column = SORT_COLUMNS.get(sort_by, Resource.created_at)
        query = query.order_by(column.asc() if sort_order == "asc" else column.desc())
        items = query.all()

        # JSON list columns are matched in Python so SQLite and Postgres behave alike
        if phases:
            items = [r for r in items if set(phases) & set(r.phase_relevance or [])]
        if idea_types:
            items = [r for r in items if set(idea_types) & set(r.idea_types or [])]

        total = len(items)
        start = (page - 1) * limit
        return {
            "resources": items[start:start + limit],
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit) if total else 0,
        }

    def get_resource(self, resource_id: UUID, include_inactive: bool = False) -> Resource:
        query = self.db.query(Resource).filter(Resource.id == resource_id)
        if not include_inactive:
            query = query.filter(Resource.is_active == True)
        resource = query.first()
        if not resource:
            raise NotFoundError("Resource not found")
        return resource

    def create_resource(self, data: Dict[str, Any], created_by: Optional[UUID] = None,
                        tags: Optional[List[str]] = None) -> Resource:
        for field in ("title", "description", "url", "resource_type"):
            if not data.get(field):
                raise ValidationFailed(f"Resource {field} is required")
        resource = Resource(created_by=created_by, **{k: v for k, v in data.items() if k in RESOURCE_FIELDS})
        self.db.add(resource)
        self.db.flush()
        if tags:
            self.assign_tags(resource, tags)
        logger.info("resource_created", resource_id=str(resource.id))
        return resource

    def update_resource(self, resource_id: UUID, updates: Dict[str, Any]) -> Resource:
        resource = self.get_resource(resource_id, include_inactive=True)
        for field, value in updates.items():
            if field in RESOURCE_FIELDS:
                setattr(resource, field, value)
        resource.updated_at = datetime.utcnow()
        self.db.flush()
        return resource

    def delete_resource(self, resource_id: UUID) -> None:
        """Soft delete so ratings, bookmarks and history stay intact."""
        resource = self.get_resource(resource_id, include_inactive=True)
        resource.is_active = False
        resource.updated_at = datetime.utcnow()
        self.db.flush()
        logger.info("resource_deactivated", resource_id=str(resource_id))

    # =========================================================================
    # Access Tracking
    # =========================================================================

    def track_access(self, user_id: UUID, resource_id: UUID, access_type: str = "view",
                     analysis_id: Optional[UUID] = None) -> ResourceAccess:
        if access_type not in ACCESS_TYPES:
            raise ValidationFailed(f"Invalid access type. Must be one of: {', '.join(ACCESS_TYPES)}")
        resource = self.get_resource(resource_id)

        access = ResourceAccess(
            user_id=user_id, resource_id=resource.id, analysis_id=analysis_id, access_type=access_type,
        )
        self.db.add(access)
        resource.view_count = (resource.view_count or 0) + 1
        self.db.flush()
        return access

    def get_access_history(self, user_id: UUID, limit: int = 50) -> List[ResourceAccess]:
        return (
            self.db.query(ResourceAccess)
            .filter(ResourceAccess.user_id == user_id)
            .order_by(ResourceAccess.accessed_at.desc())
            .limit(limit)
            .all()
        )

    # =========================================================================
    # Bookmarks
    # =========================================================================

    def add_bookmark(self, user_id: UUID, resource_id: UUID, notes: Optional[str] = None,
                     custom_tags: Optional[List[str]] = None) -> UserBookmark:
        resource = self.get_resource(resource_id)
        existing = self.db.query(UserBookmark).filter(
            UserBookmark.user_id == user_id, UserBookmark.resource_id == resource_id
        ).first()
        if existing:
            raise ConflictError("Resource already bookmarked")

        bookmark = UserBookmark(user_id=user_id, resource_id=resource_id, notes=notes, custom_tags=custom_tags or [])
        self.db.add(bookmark)
        resource.bookmark_count = (resource.bookmark_count or 0) + 1
        self.db.flush()
        return bookmark

    def _get_bookmark(self, user_id: UUID, resource_id: UUID) -> UserBookmark:
        bookmark = self.db.query(UserBookmark).filter(
            UserBookmark.user_id == user_id, UserBookmark.resource_id == resource_id
        ).first()
        if not bookmark:
            raise NotFoundError("Bookmark not found")
        return bookmark

    def update_bookmark(self, user_id: UUID, resource_id: UUID, notes: Optional[str] = None,
                        custom_tags: Optional[List[str]] = None) -> UserBookmark:
        bookmark = self._get_bookmark(user_id, resource_id)
        if notes is not None:
            bookmark.notes = notes
        if custom_tags is not None:
            bookmark.custom_tags = custom_tags
        bookmark.updated_at = datetime.utcnow()
        self.db.flush()
        return bookmark

    def remove_bookmark(self, user_id: UUID, resource_id: UUID) -> None:
        bookmark = self._get_bookmark(user_id, resource_id)
        resource = self.db.query(Resource).filter(Resource.id == resource_id).first()
        self.db.delete(bookmark)
        if resource:
            resource.bookmark_count = max(0, (resource.bookmark_count or 0) - 1)
        self.db.flush()

    def list_bookmarks(self, user_id: UUID) -> List[UserBookmark]:
        return (
            self.db.query(UserBookmark)
            .filter(UserBookmark.user_id == user_id)
            .order_by(UserBookmark.created_at.desc())
            .all()
        )

    # =========================================================================
    # Ratings
    # =========================================================================

    def rate_resource(self, user_id: UUID, resource_id: UUID, rating: int, review: Optional[str] = None) -> ResourceRating:
        """Create or update the user's single rating for a resource."""
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationFailed("Rating must be an integer between 1 and 5")
        resource = self.get_resource(resource_id)

        existing = self.db.query(ResourceRating).filter(
            ResourceRating.user_id == user_id, ResourceRating.resource_id == resource_id
        ).first()
        if existing:
            existing.rating = rating
            existing.review = review
            existing.updated_at = datetime.utcnow()
            record = existing
        else:
            record = ResourceRating(user_id=user_id, resource_id=resource_id, rating=rating, review=review)
            self.db.add(record)
        self.db.flush()

        self._recalculate_rating(resource)
        logger.info("resource_rated", resource_id=str(resource_id), rating=rating, updated=bool(existing))
        return record

    def _recalculate_rating(self, resource: Resource) -> None:
        ratings = [r.rating for r in self.db.query(ResourceRating).filter(ResourceRating.resource_id == resource.id)]
        average = sum(ratings) / len(ratings) if ratings else 0
        resource.average_rating = math.floor(average * 100)
        resource.rating_count = len(ratings)
        self.db.flush()

    def list_ratings(self, resource_id: UUID, sort_by: str = "recent", limit: int = 20) -> List[ResourceRating]:
        self.get_resource(resource_id)
        query = self.db.query(ResourceRating).filter(ResourceRating.resource_id == resource_id)
        if sort_by == "helpful":
            query = query.order_by(ResourceRating.is_helpful_count.desc())
        else:
            query = query.order_by(ResourceRating.created_at.desc())
        return query.limit(limit).all()

    def get_rating_stats(self, resource_id: UUID) -> Dict[str, Any]:
        self.get_resource(resource_id)
        ratings = [r.rating for r in self.db.query(ResourceRating).filter(ResourceRating.resource_id == resource_id)]
        distribution = {star: 0 for star in range(1, 6)}
        for value in ratings:
            distribution[value] += 1
        return {
            "average_rating": round_half_up(sum(ratings) / len(ratings), 1) if ratings else 0,
            "total_ratings": len(ratings),
            "distribution": distribution,
        }

    def mark_rating_helpful(self, rating_id: UUID) -> ResourceRating:
        record = self.db.query(ResourceRating).filter(ResourceRating.id == rating_id).first()
        if not record:
            raise NotFoundError("Rating not found")
        record.is_helpful_count = (record.is_helpful_count or 0) + 1
        self.db.flush()
        return record

    # =========================================================================
    # Contributions
    # =========================================================================

    def submit_contribution(self, user_id: UUID, title: str, description: str, url: str,
                            suggested_category_id: Optional[UUID] = None,
                            suggested_tags: Optional[List[str]] = None) -> ResourceContribution:
        if not title or not description or not url:
            raise ValidationFailed("Title, description and URL are required")
        if not re.match(r"^https?://", url):
            raise ValidationFailed("URL must start with http:// or https://")

        contribution = ResourceContribution(
            user_id=user_id,
            title=title,
            description=description,
            url=url,
            suggested_category_id=suggested_category_id,
            suggested_tags=suggested_tags or [],
            status=ContributionStatus.PENDING,
        )
        self.db.add(contribution)
        self.db.flush()
        logger.info("contribution_submitted", contribution_id=str(contribution.id), user_id=str(user_id))
        return contribution

    def list_user_contributions(self, user_id: UUID) -> List[ResourceContribution]:
        return (
            self.db.query(ResourceContribution)
            .filter(ResourceContribution.user_id == user_id)
            .order_by(ResourceContribution.created_at.desc())
            .all()
        )

    def list_pending_contributions(self) -> List[ResourceContribution]:
        return (
            self.db.query(ResourceContribution)
            .filter(ResourceContribution.status == ContributionStatus.PENDING)
            .order_by(ResourceContribution.created_at)
            .all()
        )

    def _pending_contribution(self, contribution_id: UUID, action: str) -> ResourceContribution:
        contribution = self.db.query(ResourceContribution).filter(ResourceContribution.id == contribution_id).first()
        if not contribution:
            raise NotFoundError("Contribution not found")
        if contribution.status != ContributionStatus.PENDING:
            raise ValidationFailed(f"Only pending contributions can be {action}")
        return contribution

    def approve_contribution(self, contribution_id: UUID, admin_id: UUID,
                             resource_data: Optional[Dict[str, Any]] = None,
                             admin_notes: Optional[str] = None) -> Resource:
        """Approve a pending contribution and publish it as a resource."""
        contribution = self._pending_contribution(contribution_id, "approved")
        resource_data = resource_data or {}

        resource = self.create_resource(
            {
                "title": resource_data.get("title") or contribution.title,
                "description": resource_data.get("description") or contribution.description,
                "url": resource_data.get("url") or contribution.url,
                "resource_type": resource_data.get("resource_type") or "tool",
                "category_id": resource_data.get("category_id") or contribution.suggested_category_id,
                "phase_relevance": resource_data.get("phase_relevance") or [],
                "idea_types": resource_data.get("idea_types") or [],
                "difficulty_level": resource_data.get("difficulty_level"),
                "estimated_time_minutes": resource_data.get("estimated_time_minutes"),
                "is_premium": bool(resource_data.get("is_premium", False)),
                "is_active": True,
            },
            created_by=contribution.user_id,
            tags=list(contribution.suggested_tags or []),
        )

        contribution.status = ContributionStatus.APPROVED
        contribution.reviewed_by = admin_id
        contribution.reviewed_at = datetime.utcnow()
        contribution.admin_notes = admin_notes
        self.db.flush()

        logger.info("contribution_approved", contribution_id=str(contribution_id), resource_id=str(resource.id))
        return resource

    def reject_contribution(self, contribution_id: UUID, admin_id: UUID, reason: Optional[str] = None) -> ResourceContribution:
        contribution = self._pending_contribution(contribution_id, "rejected")
        contribution.status = ContributionStatus.REJECTED
        contribution.reviewed_by = admin_id
        contribution.reviewed_at = datetime.utcnow()
        contribution.admin_notes = reason
        self.db.flush()
        logger.info("contribution_rejected", contribution_id=str(contribution_id))
        return contribution

    # =========================================================================
    # Seed Data
    # =========================================================================

    def seed_library(self) -> int:
        """Insert the starter categories and resources that are missing. Returns resources added."""
        categories = {}
        for order, (name, description, icon) in enumerate(SEED_CATEGORIES):
            category = self.db.query(ResourceCategory).filter(ResourceCategory.slug == slugify(name)).first()
            if not category:
                category = self.create_category(name, description, icon, display_order=order)
            categories[name] = category

        added = 0
        for entry in SEED_RESOURCES:
            if self.db.query(Resource).filter(Resource.url == entry["url"]).first():
                continue
            data = {k: v for k, v in entry.items() if k not in ("category", "tags")}
            data["category_id"] = categories[entry["category"]].id
            self.create_resource(data, tags=entry.get("tags"))
            added += 1

        logger.info("resource_library_seeded", added=added)
        return added


SEED_CATEGORIES = [
    ("Market Research", "Tools and guides for sizing and understanding a market", "search"),
    ("Validation", "Ways to test demand before building", "check-circle"),
    ("Development", "Building and shipping the product", "code"),
    ("Launch & Marketing", "Getting the product in front of customers", "rocket"),
    ("Funding & Finance", "Budgeting, pricing and raising money", "dollar-sign"),
]

SEED_RESOURCES: List[Dict[str, Any]] = [
    {
        "title": "Google Trends",
        "description": "Compare search interest over time to gauge demand and seasonality.",
        "url": "https://trends.google.com",
        "resource_type": "tool",
        "category": "Market Research",
        "phase_relevance": ["research"],
        "idea_types": ["software", "physical_product", "service", "marketplace"],
        "difficulty_level": "beginner",
        "estimated_time_minutes": 30,
        "tags": ["market sizing", "demand"],
    },
    {
        "title": "The Mom Test",
        "description": "How to talk to customers and learn whether your business is a good idea.",
        "url": "https://www.momtestbook.com",
        "resource_type": "guide",
        "category": "Validation",
        "phase_relevance": ["research", "validation"],
        "idea_types": ["software", "physical_product", "service", "marketplace"],
        "difficulty_level": "beginner",
        "estimated_time_minutes": 240,
        "tags": ["customer interviews"],
    },
    {
        "title": "Lean Canvas",
        "description": "One-page business model template for early stage ideas.",
        "url": "https://leanstack.com/lean-canvas",
        "resource_type": "template",
        "category": "Validation",
        "phase_relevance": ["validation"],
        "idea_types": ["software", "service", "marketplace"],
        "difficulty_level": "beginner",
        "estimated_time_minutes": 60,
        "tags": ["business model"],
    },
    {
        "title": "Shape Up",
        "description": "A product development method for shipping meaningful work in fixed cycles.",
        "url": "https://basecamp.com/shapeup",
        "resource_type": "guide",
        "category": "Development",
        "phase_relevance": ["development"],
        "idea_types": ["software"],
        "difficulty_level": "intermediate",
        "estimated_time_minutes": 180,
        "tags": ["product management"],
    },
    {
        "title": "Product Hunt Launch Guide",
        "description": "Preparation checklist and timeline for a Product Hunt launch.",
        "url": "https://www.producthunt.com/launch",
        "resource_type": "guide",
        "category": "Launch & Marketing",
        "phase_relevance": ["launch"],
        "idea_types": ["software", "physical_product"],
        "difficulty_level": "beginner",
        "estimated_time_minutes": 45,
        "tags": ["launch"],
    },
    {
        "title": "Startup Financial Model",
        "description": "Spreadsheet template for revenue, cost and runway projections.",
        "url": "https://www.ycombinator.com/library/financial-model",
        "resource_type": "template",
        "category": "Funding & Finance",
        "phase_relevance": ["validation", "launch"],
        "idea_types": ["software", "physical_product", "service", "marketplace"],
        "difficulty_level": "intermediate",
        "estimated_time_minutes": 120,
        "tags": ["finance", "runway"],
    },
]

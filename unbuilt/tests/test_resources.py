"""Tests for the resource library."""

import uuid

import pytest

from unbuilt.core.errors import ConflictError, NotFoundError, ValidationFailed
from unbuilt.core.models import ContributionStatus
from unbuilt.services import ResourceService
from unbuilt.services.resources import resource_dict, slugify


@pytest.fixture
def service(db_session):
    return ResourceService(db_session)


@pytest.fixture
def marker():
    """Word that only this test's resources contain."""
    return f"zq{uuid.uuid4().hex[:10]}"


@pytest.fixture
def make_resource(service, marker):
    def _make(title="Customer interview script", **extra):
        data = {
            "title": f"{title} {marker}",
            "description": "Questions that uncover real pain",
            "url": f"https://example.com/{uuid.uuid4().hex}",
            "resource_type": "template",
        }
        data.update(extra)
        return service.create_resource(data)
    return _make


class TestCategoriesAndTags:
    """Tests for categories and tags."""

    def test_slugify(self):
        assert slugify("Market Research & Validation!") == "market-research-validation"

    def test_category_tree(self, service):
        name = f"Parent {uuid.uuid4().hex[:6]}"
        parent = service.create_category(name)
        service.create_category(f"{name} child", parent_id=parent.id)

        node = next(n for n in service.get_category_tree() if n["name"] == name)

        assert [c["name"] for c in node["children"]] == [f"{name} child"]

    def test_duplicate_category(self, service):
        name = f"Dup {uuid.uuid4().hex[:6]}"
        service.create_category(name)

        with pytest.raises(ConflictError):
            service.create_category(name)

    def test_tags_are_reused(self, service, make_resource):
        """The same tag name maps to one tag whose usage count grows."""
        tag_name = f"Lean {uuid.uuid4().hex[:6]}"
        first = make_resource()
        second = make_resource()

        service.assign_tags(first, [tag_name, " "])
        service.assign_tags(second, [tag_name])

        assert first.tags[0].id == second.tags[0].id
        assert first.tags[0].usage_count == 2


class TestResources:
    """Tests for resource CRUD and listing."""

    def test_required_fields(self, service):
        with pytest.raises(ValidationFailed):
            service.create_resource({"title": "No url", "description": "x", "resource_type": "tool"})

    def test_search_and_filters(self, service, make_resource, marker):
        make_resource("Pricing calculator", resource_type="tool", phase_relevance=["validation"])
        make_resource("Launch checklist", phase_relevance=["launch"], idea_types=["software"])

        assert service.list_resources(search=marker)["total"] == 2
        assert service.list_resources(search=marker, resource_types=["tool"])["total"] == 1

        launch = service.list_resources(search=marker, phases=["launch"])
        assert [r.title for r in launch["resources"]] == [f"Launch checklist {marker}"]
        assert service.list_resources(search=marker, idea_types=["hardware"])["total"] == 0

    def test_pagination(self, service, make_resource, marker):
        for i in range(3):
            make_resource(f"Guide {i}")

        page = service.list_resources(search=marker, page=2, limit=2, sort_by="title", sort_order="asc")

        assert page["total"] == 3
        assert page["total_pages"] == 2
        assert [r.title for r in page["resources"]] == [f"Guide 2 {marker}"]

    def test_invalid_page(self, service):
        with pytest.raises(ValidationFailed):
            service.list_resources(page=0)

    def test_soft_delete(self, service, make_resource, marker):
        resource = make_resource()

        service.delete_resource(resource.id)

        assert service.list_resources(search=marker)["total"] == 0
        with pytest.raises(NotFoundError):
            service.get_resource(resource.id)
        assert service.get_resource(resource.id, include_inactive=True).is_active is False

    def test_track_access(self, service, make_resource, user):
        resource = make_resource()

        service.track_access(user.id, resource.id, "external_link")

        assert resource.view_count == 1
        assert service.get_access_history(user.id)[0].access_type == "external_link"
        with pytest.raises(ValidationFailed):
            service.track_access(user.id, resource.id, "print")


class TestBookmarksAndRatings:
    """Tests for bookmarks and ratings."""

    def test_bookmark_counts(self, service, make_resource, user):
        resource = make_resource()

        service.add_bookmark(user.id, resource.id, notes="read later")
        assert resource.bookmark_count == 1
        with pytest.raises(ConflictError):
            service.add_bookmark(user.id, resource.id)

        service.update_bookmark(user.id, resource.id, notes="done")
        assert service.list_bookmarks(user.id)[0].notes == "done"

        service.remove_bookmark(user.id, resource.id)
        assert resource.bookmark_count == 0
        assert service.list_bookmarks(user.id) == []

    def test_rating_average_is_stored_floored(self, service, make_resource, make_user):
        resource = make_resource()
        for value in (5, 4, 4):
            service.rate_resource(make_user().id, resource.id, value)

        assert resource.average_rating == 433
        assert resource.rating_count == 3
        assert resource_dict(resource)["average_rating"] == 4.33

    def test_rating_is_upserted(self, service, make_resource, user):
        """Rating again replaces the earlier rating."""
        resource = make_resource()
        service.rate_resource(user.id, resource.id, 2)
        service.rate_resource(user.id, resource.id, 5, review="Changed my mind")

        stats = service.get_rating_stats(resource.id)

        assert stats["total_ratings"] == 1
        assert stats["distribution"] == {1: 0, 2: 0, 3: 0, 4: 0, 5: 1}
        assert resource.average_rating == 500

    @pytest.mark.parametrize("value", [0, 6, 4.5, True])
    def test_rating_range(self, service, make_resource, user, value):
        with pytest.raises(ValidationFailed):
            service.rate_resource(user.id, make_resource().id, value)

    def test_helpful_votes(self, service, make_resource, user):
        record = service.rate_resource(user.id, make_resource().id, 4)

        assert service.mark_rating_helpful(record.id).is_helpful_count == 1


class TestContributions:
    """Tests for community contributions."""

    def test_url_must_be_http(self, service, user):
        with pytest.raises(ValidationFailed):
            service.submit_contribution(user.id, "Tool", "A tool", "ftp://example.com")

    def test_approve_publishes_resource(self, service, user, make_user):
        admin = make_user(is_admin=True)
        contribution = service.submit_contribution(
            user.id, "Canvas builder", "Lean canvas tool", "https://example.com/canvas",
            suggested_tags=[f"canvas-{uuid.uuid4().hex[:6]}"],
        )
        assert contribution.id in {c.id for c in service.list_pending_contributions()}

        resource = service.approve_contribution(contribution.id, admin.id, {"resource_type": "tool"})

        assert resource.title == "Canvas builder"
        assert resource.created_by == user.id
        assert len(resource.tags) == 1
        assert contribution.status == ContributionStatus.APPROVED
        assert contribution.reviewed_by == admin.id

    def test_only_pending_can_be_reviewed(self, service, user, make_user):
        admin = make_user(is_admin=True)
        contribution = service.submit_contribution(user.id, "Tool", "A tool", "https://example.com/t")
        service.reject_contribution(contribution.id, admin.id, "Duplicate")

        with pytest.raises(ValidationFailed):
            service.approve_contribution(contribution.id, admin.id)
        assert service.list_user_contributions(user.id)[0].status == ContributionStatus.REJECTED

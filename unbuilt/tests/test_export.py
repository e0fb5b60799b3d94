"""Tests for plan export."""

import csv
import io
import json

import pytest

from unbuilt.core.errors import ValidationFailed
from unbuilt.core.models import TaskStatus
from unbuilt.services import TaskService
from unbuilt.services.export import CSV_HEADER, ExportOptions, export_plan


@pytest.fixture
def worked_plan(db_session, plan, user):
    """Plan with one completed, one in-progress and one skipped task."""
    tasks = TaskService(db_session)
    first = plan.phases[0].tasks
    tasks.update_task_status(first[0].id, user.id, TaskStatus.COMPLETED)
    tasks.update_task_status(first[1].id, user.id, TaskStatus.IN_PROGRESS)
    tasks.update_task_status(first[2].id, user.id, TaskStatus.SKIPPED)
    return plan


class TestExportFormats:
    """Tests for each export format."""

    def test_unsupported_format(self, plan):
        with pytest.raises(ValidationFailed):
            export_plan(plan, ExportOptions(format="pdf"))

    def test_filename_and_media_type(self, plan):
        result = export_plan(plan, ExportOptions(format="markdown"))

        assert result.media_type == "text/markdown"
        assert result.filename.startswith("my-launch-plan-")
        assert result.filename.endswith(".md")

    def test_csv_rows(self, worked_plan):
        """One row per task under a fixed header."""
        result = export_plan(worked_plan, ExportOptions(format="csv"))
        rows = list(csv.reader(io.StringIO(result.content.decode("utf-8"))))

        assert rows[0] == CSV_HEADER
        assert len(rows) == 11
        assert rows[1][0] == "Research & Validation"
        assert rows[1][5] == "completed"
        assert rows[1][11] == "No"

    def test_csv_filters(self, worked_plan):
        """Completed and skipped tasks can be left out."""
        options = ExportOptions(format="csv", include_completed=False, include_skipped=False)
        rows = list(csv.reader(io.StringIO(export_plan(worked_plan, options).content.decode("utf-8"))))

        assert len(rows) == 9
        assert {row[5] for row in rows[1:]} == {"in_progress", "not_started"}

    def test_json_structure(self, worked_plan):
        data = json.loads(export_plan(worked_plan, ExportOptions(format="json")).content)

        assert set(data) == {"exportMetadata", "plan", "statistics", "phases"}
        assert data["plan"]["title"] == "My launch plan"
        assert data["statistics"]["totalTasks"] == 10
        assert data["statistics"]["completedTasks"] == 1
        assert data["statistics"]["completionPercentage"] == 10
        assert [p["name"] for p in data["phases"]][0] == "Research & Validation"

    def test_json_statistics_follow_filters(self, worked_plan):
        options = ExportOptions(format="json", include_completed=False)
        data = json.loads(export_plan(worked_plan, options).content)

        assert data["statistics"]["totalTasks"] == 9
        assert data["statistics"]["completedTasks"] == 0
        assert data["exportMetadata"]["includeCompleted"] is False

    def test_markdown_checklist(self, worked_plan):
        text = export_plan(worked_plan, ExportOptions(format="markdown")).content.decode("utf-8")

        assert text.startswith("# My launch plan")
        assert "**Progress:** 1/10 tasks completed (10%)" in text
        assert "- [x] Interview 10 potential customers" in text
        assert "- [ ] Map existing competitors and alternatives _(in progress)_" in text
        assert "- [ ] Estimate market size _(skipped)_" in text

    def test_markdown_progress_ignores_filters(self, worked_plan):
        """Hidden tasks still count toward progress."""
        options = ExportOptions(format="markdown", include_completed=False)
        text = export_plan(worked_plan, options).content.decode("utf-8")

        assert "Interview 10 potential customers" not in text
        assert "**Progress:** 1/10 tasks completed (10%)" in text

    def test_custom_task_marked(self, db_session, plan, user):
        TaskService(db_session).create_task(plan.phases[0].id, user.id, "Call my mentor")
        db_session.expire(plan.phases[0], ["tasks"])

        text = export_plan(plan, ExportOptions(format="markdown")).content.decode("utf-8")

        assert "- [ ] Call my mentor _(custom)_" in text

"""ActivityService のユニットテスト"""

from dataclasses import replace

import pytest
from mineaction.domain.errors import NotFoundError
from mineaction.domain.models import Actor, AuditAction, AuditEntityType, ShiftType
from mineaction.services.activity_service import ActivityService
from mineaction.services.audit_service import AuditService

_ACTOR = Actor(uid="uid-alice", name="Alice")


@pytest.fixture
def project(project_repo, sample_project):
    return project_repo.create(replace(sample_project, created_by="uid-alice"))


@pytest.fixture
def service(activity_repo, project_repo, audit_repo):
    return ActivityService(activity_repo, project_repo, AuditService(audit_repo))


class TestCreateActivity:
    def test_creates_under_project(self, service, project, sample_activity, audit_repo):
        created = service.create_activity(project.id, sample_activity, _ACTOR)

        assert created.project_id == project.id
        assert created.created_by == "uid-alice"
        [entry] = audit_repo.entries
        assert entry.type is AuditEntityType.ACTIVITY
        assert entry.details == "Created activity: Clearance / Morning shift / crew A"

    def test_missing_project(self, service, sample_activity, activity_repo):
        """親プロジェクトが存在しなければ作成しない"""
        with pytest.raises(NotFoundError):
            service.create_activity("nope", sample_activity, _ACTOR)

        assert activity_repo.items == {}


class TestUpdateActivity:
    def test_update_diff_order(self, service, project, sample_activity, audit_repo):
        """差分は更新フィールドの順に記録される"""
        created = service.create_activity(project.id, sample_activity, _ACTOR)

        updated = service.update_activity(
            created.id, {"crew": "B", "remarks": "Fog delayed start"}, _ACTOR
        )

        assert updated.crew == "B"
        entry = audit_repo.entries[-1]
        assert entry.action is AuditAction.UPDATE
        assert [(c.field, c.old_value, c.new_value) for c in entry.changes] == [
            ("crew", "A", "B"),
            ("remarks", None, "Fog delayed start"),
        ]

    def test_unchanged_values_give_empty_changes(self, service, project, sample_activity, audit_repo):
        created = service.create_activity(project.id, sample_activity, _ACTOR)

        service.update_activity(created.id, {"shift": ShiftType.MORNING}, _ACTOR)

        assert audit_repo.entries[-1].changes == []

    def test_update_missing(self, service):
        with pytest.raises(NotFoundError):
            service.update_activity("nope", {"crew": "B"}, _ACTOR)


class TestListAndDelete:
    def test_list_by_project(self, service, project, project_repo, sample_project, sample_activity):
        other = project_repo.create(sample_project)
        mine = service.create_activity(project.id, sample_activity, _ACTOR)
        service.create_activity(other.id, sample_activity, _ACTOR)

        assert [a.id for a in service.list_by_project(project.id)] == [mine.id]
        assert len(service.list_activities()) == 2

    def test_delete(self, service, project, sample_activity, activity_repo, audit_repo):
        created = service.create_activity(project.id, sample_activity, _ACTOR)

        service.delete_activity(created.id, _ACTOR)

        assert activity_repo.get(created.id) is None
        assert audit_repo.entries[-1].action is AuditAction.DELETE

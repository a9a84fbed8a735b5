"""
Tests for the task use cases.
"""

from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from task_manager.core.exceptions import Forbidden, NotFound, ValidationError
from task_manager.models import Task, User, task_user
from task_manager.repositories.task_repository import TaskRepository
from task_manager.services.authorization import TaskAuthorizationGate
from task_manager.services.task_service import TaskService, clean_task_fields

from .helpers import as_caller


def assignment_rows(db, task_id: int) -> int:
    return db.execute(
        select(func.count()).select_from(task_user).where(task_user.c.task_id == task_id)
    ).scalar_one()


# ── Field validation ───────────────────────────────────────────────────


class TestCleanTaskFields:
    def test_drops_non_whitelisted_fields(self):
        cleaned = clean_task_fields({"title": "x", "user_id": 99, "id": 5, "created_at": "2020-01-01"})
        assert cleaned == {"title": "x"}

    def test_title_is_required_on_create(self):
        with pytest.raises(ValidationError) as excinfo:
            clean_task_fields({"description": "no title"}, creating=True)
        assert excinfo.value.errors == {"title": ["The title field is required."]}

    @pytest.mark.parametrize("title", ["", "   ", None, "x" * 256])
    def test_rejects_bad_titles(self, title):
        with pytest.raises(ValidationError) as excinfo:
            clean_task_fields({"title": title})
        assert "title" in excinfo.value.errors

    def test_accepts_title_of_max_length(self):
        assert clean_task_fields({"title": "x" * 255})["title"] == "x" * 255

    def test_normalizes_status_and_priority(self):
        cleaned = clean_task_fields({"status": "In Progress", "priority": "HIGH"})
        assert cleaned == {"status": "in-progress", "priority": "high"}

    def test_reports_every_invalid_field(self):
        with pytest.raises(ValidationError) as excinfo:
            clean_task_fields({"title": "", "status": "blocked", "priority": "urgent", "due_date": "soon"})
        assert set(excinfo.value.errors) == {"title", "status", "priority", "due_date"}

    def test_null_due_date_clears_it(self):
        assert clean_task_fields({"due_date": None}) == {"due_date": None}


# ── Create / read ──────────────────────────────────────────────────────


def test_create_sets_creator_from_caller(db, make_user):
    alice, bob = make_user(), make_user()
    service = TaskService(db)

    task = service.create_task(as_caller(alice), {
        "title": "Report",
        "status": "todo",
        "priority": "high",
        "due_date": "2024-12-15",
        "user_id": bob.id,
    })

    assert task.id is not None
    assert task.user_id == alice.id
    assert task.due_date == date(2024, 12, 15)
    assert task.status == "todo"
    assert task.priority == "high"


def test_create_applies_defaults(db, make_user):
    alice = make_user()
    task = TaskService(db).create_task(as_caller(alice), {"title": "Minimal"})
    assert task.status == "todo"
    assert task.priority == "medium"
    assert task.description is None
    assert task.due_date is None


def test_get_missing_task_is_not_found(db, make_user):
    with pytest.raises(NotFound):
        TaskService(db).get_task(as_caller(make_user()), 12345)


def test_get_foreign_task_is_forbidden_not_hidden(db, make_user, make_task):
    alice, bob = make_user(), make_user()
    task = make_task(alice)
    with pytest.raises(Forbidden):
        TaskService(db).get_task(as_caller(bob), task.id)


def test_assignee_can_view(db, make_user, make_task):
    alice, bob = make_user(), make_user()
    task = make_task(alice)
    service = TaskService(db)
    service.assign_user(as_caller(alice), task.id, bob.id)

    assert service.get_task(as_caller(bob), task.id).id == task.id
    assert [u.id for u in service.get_assignees(as_caller(bob), task.id)] == [bob.id]


def test_task_detail_checks_visibility_once(db, make_user, make_task):
    alice, bob = make_user(), make_user()
    task = make_task(alice)
    checks = []

    class CountingGate(TaskAuthorizationGate):
        def can_view(self, user, task, assignee_ids):
            checks.append(task.id)
            return super().can_view(user, task, assignee_ids)

    service = TaskService(db, gate=CountingGate())
    service.assign_user(as_caller(alice), task.id, bob.id)

    loaded, assignees = service.get_task_detail(as_caller(bob), task.id)

    assert loaded.id == task.id
    assert [u.id for u in assignees] == [bob.id]
    assert checks == [task.id]


# ── Update ─────────────────────────────────────────────────────────────


def test_partial_update_changes_only_given_fields(db, make_user, make_task):
    alice = make_user()
    task = make_task(alice, title="Old", description="keep me", priority="low", due_date=date(2024, 1, 1))

    updated = TaskService(db).update_task(as_caller(alice), task.id, {"title": "New", "status": "done"})

    assert updated.title == "New"
    assert updated.status == "done"
    assert updated.description == "keep me"
    assert updated.priority == "low"
    assert updated.due_date == date(2024, 1, 1)


def test_update_cannot_change_creator(db, make_user, make_task):
    alice, bob = make_user(), make_user()
    task = make_task(alice)

    updated = TaskService(db).update_task(as_caller(alice), task.id, {"user_id": bob.id, "title": "Mine"})

    assert updated.user_id == alice.id


def test_assignee_cannot_update_or_delete_by_default(db, make_user, make_task):
    alice, bob = make_user(), make_user()
    task = make_task(alice, title="Original")
    service = TaskService(db, gate=TaskAuthorizationGate("creator"))
    service.assign_user(as_caller(alice), task.id, bob.id)

    with pytest.raises(Forbidden):
        service.update_task(as_caller(bob), task.id, {"title": "Hijacked"})
    with pytest.raises(Forbidden):
        service.delete_task(as_caller(bob), task.id)

    db.refresh(task)
    assert task.title == "Original"


def test_assignee_can_update_when_scope_allows(db, make_user, make_task):
    alice, bob = make_user(), make_user()
    task = make_task(alice)
    service = TaskService(db, gate=TaskAuthorizationGate("creator_or_assignee"))
    service.assign_user(as_caller(alice), task.id, bob.id)

    updated = service.update_task(as_caller(bob), task.id, {"status": "in-progress"})

    assert updated.status == "in-progress"
    assert updated.user_id == alice.id
    with pytest.raises(Forbidden):
        service.delete_task(as_caller(bob), task.id)


def test_update_missing_task_is_not_found(db, make_user):
    with pytest.raises(NotFound):
        TaskService(db).update_task(as_caller(make_user()), 999, {"title": "x"})


# ── Delete ─────────────────────────────────────────────────────────────


def test_delete_cascades_assignments_only(db, make_user, make_task):
    alice, bob = make_user(), make_user()
    doomed = make_task(alice)
    other = make_task(alice)
    service = TaskService(db)
    service.assign_user(as_caller(alice), doomed.id, bob.id)
    service.assign_user(as_caller(alice), other.id, bob.id)
    doomed_id = doomed.id

    service.delete_task(as_caller(alice), doomed_id)

    assert db.get(Task, doomed_id) is None
    assert assignment_rows(db, doomed_id) == 0
    assert db.get(Task, other.id) is not None
    assert assignment_rows(db, other.id) == 1
    assert db.get(User, alice.id) is not None
    assert db.get(User, bob.id) is not None


def test_delete_foreign_task_is_forbidden(db, make_user, make_task):
    alice, bob = make_user(), make_user()
    task = make_task(alice)
    with pytest.raises(Forbidden):
        TaskService(db).delete_task(as_caller(bob), task.id)
    assert db.get(Task, task.id) is not None


# ── Assign ─────────────────────────────────────────────────────────────


def test_assign_is_idempotent(db, make_user, make_task):
    alice, bob = make_user(), make_user()
    task = make_task(alice)
    service = TaskService(db)

    assert service.assign_user(as_caller(alice), task.id, bob.id) is True
    assert service.assign_user(as_caller(alice), task.id, bob.id) is False
    assert assignment_rows(db, task.id) == 1
    assert service.tasks.get_assignee_ids(task.id) == {bob.id}


def test_concurrent_duplicate_assignment_is_not_an_error(db, session_factory, make_user, make_task, monkeypatch):
    alice, bob = make_user(), make_user()
    task = make_task(alice)
    task_id, bob_id = task.id, bob.id
    repo = TaskRepository(db)
    real_is_assigned = repo.is_assigned
    answers = iter([False])

    def stale_then_real(t_id, u_id):
        # the first check answers as if the other writer had not committed yet
        stale = next(answers, None)
        return real_is_assigned(t_id, u_id) if stale is None else stale

    other = session_factory()
    try:
        other.execute(task_user.insert().values(task_id=task_id, user_id=bob_id))
        other.commit()
    finally:
        other.close()
    monkeypatch.setattr(repo, "is_assigned", stale_then_real)

    assert repo.add_assignee(task_id, bob_id) is False
    assert assignment_rows(db, task_id) == 1


def test_assignment_integrity_error_propagates_when_pair_is_absent(db, make_user, make_task, monkeypatch):
    alice = make_user()
    task = make_task(alice)
    repo = TaskRepository(db)
    monkeypatch.setattr(repo, "is_assigned", lambda task_id, user_id: False)

    with pytest.raises(IntegrityError):
        repo.add_assignee(task.id, 4242)


def test_assign_unknown_user_is_a_validation_error(db, make_user, make_task):
    alice = make_user()
    task = make_task(alice)
    with pytest.raises(ValidationError) as excinfo:
        TaskService(db).assign_user(as_caller(alice), task.id, 4242)
    assert "user_id" in excinfo.value.errors
    assert assignment_rows(db, task.id) == 0


def test_only_creator_may_assign(db, make_user, make_task):
    alice, bob, carol = make_user(), make_user(), make_user()
    task = make_task(alice)
    service = TaskService(db)
    service.assign_user(as_caller(alice), task.id, bob.id)

    with pytest.raises(Forbidden):
        service.assign_user(as_caller(bob), task.id, carol.id)


def test_assign_to_missing_task_is_not_found(db, make_user):
    alice, bob = make_user(), make_user()
    with pytest.raises(NotFound):
        TaskService(db).assign_user(as_caller(alice), 777, bob.id)

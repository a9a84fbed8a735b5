"""
Task use cases: create, read, list, update, delete and assign.

Every method takes the caller as an explicit ``CurrentUser``. Authorization
is decided by ``TaskAuthorizationGate``; a denial becomes ``Forbidden``
(also for tasks the caller cannot see at all), a missing task ``NotFound``.
"""
import logging
from typing import Any, Dict, List, Optional, Set, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.auth import CurrentUser
from ..core.exceptions import Forbidden, NotFound, ValidationError
from ..models.task import Task, TaskPriority, TaskStatus
from ..models.user import User
from ..repositories.task_repository import MUTABLE_FIELDS, TaskRepository
from ..repositories.user_repository import UserRepository
from .authorization import TaskAuthorizationGate
from .task_query import (
    PagedResult, TaskFilters, list_tasks, normalize_priority, normalize_status, parse_due_date
)

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 255
STATUSES = {s.value for s in TaskStatus}
PRIORITIES = {p.value for p in TaskPriority}


def clean_task_fields(fields: Dict[str, Any], creating: bool = False) -> Dict[str, Any]:
    """
    Keep only the client-settable fields and validate them.

    ``creating`` makes ``title`` mandatory. Status and priority are mapped to
    their canonical lowercase form. Raises ``ValidationError`` listing every
    offending field.
    """
    cleaned: Dict[str, Any] = {}
    errors: Dict[str, List[str]] = {}

    for name in MUTABLE_FIELDS:
        if name not in fields:
            continue
        value = fields[name]
        if value is None and creating and name in ("status", "priority"):
            continue

        if name == "title":
            if not isinstance(value, str) or not value.strip():
                errors["title"] = ["The title field is required."]
            elif len(value.strip()) > TITLE_MAX_LENGTH:
                errors["title"] = [f"The title field must not be greater than {TITLE_MAX_LENGTH} characters."]
            else:
                cleaned["title"] = value.strip()
        elif name == "description":
            cleaned["description"] = value
        elif name == "status":
            status = normalize_status(value) if isinstance(value, str) else value
            if status not in STATUSES:
                errors["status"] = ["The selected status is invalid."]
            else:
                cleaned["status"] = status
        elif name == "priority":
            priority = normalize_priority(value) if isinstance(value, str) else value
            if priority not in PRIORITIES:
                errors["priority"] = ["The selected priority is invalid."]
            else:
                cleaned["priority"] = priority
        elif name == "due_date":
            if value is None or value == "":
                cleaned["due_date"] = None
            else:
                try:
                    cleaned["due_date"] = parse_due_date(value)
                except ValidationError as e:
                    errors.update(e.errors)

    if creating and "title" not in fields:
        errors["title"] = ["The title field is required."]
    if errors:
        raise ValidationError(errors)
    return cleaned


class TaskService:
    """Orchestrates the task repository, the query engine and the authorization gate."""

    def __init__(self, db: Session, gate: Optional[TaskAuthorizationGate] = None):
        self.db = db
        self.tasks = TaskRepository(db)
        self.users = UserRepository(db)
        self.gate = gate or TaskAuthorizationGate()

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(f"Database error while trying to {action}")
            raise

    def _load(self, task_id: int) -> Tuple[Task, Set[int]]:
        task = self.tasks.get(task_id)
        if task is None:
            raise NotFound("Task not found.")
        return task, self.tasks.get_assignee_ids(task.id)

    def _deny(self, user: CurrentUser, action: str, task: Task) -> Forbidden:
        logger.warning(f"{user} may not {action} task {task.id}")
        return Forbidden()

    def list_tasks(
        self,
        user: CurrentUser,
        filters: Optional[TaskFilters] = None,
        sort: Optional[str] = None,
        page=1,
        per_page: Optional[int] = None
    ) -> PagedResult[Task]:
        return list_tasks(self.db, user, filters=filters, sort=sort, page=page, per_page=per_page)

    def create_task(self, user: CurrentUser, fields: Dict[str, Any]) -> Task:
        # Any creator id in the payload is dropped by clean_task_fields
        task = self.tasks.create(user.user_id, clean_task_fields(fields, creating=True))
        self._commit("create a task")
        logger.info(f"Task {task.id} created by user {user.user_id}")
        return task

    def get_task(self, user: CurrentUser, task_id: int) -> Task:
        task, assignee_ids = self._load(task_id)
        if not self.gate.can_view(user, task, assignee_ids):
            raise self._deny(user, "view", task)
        return task

    def get_task_detail(self, user: CurrentUser, task_id: int) -> Tuple[Task, List[User]]:
        """A visible task together with its assignees, checked once."""
        task = self.get_task(user, task_id)
        return task, self.tasks.get_assignees(task.id)

    def get_assignees(self, user: CurrentUser, task_id: int) -> List[User]:
        return self.get_task_detail(user, task_id)[1]

    def update_task(self, user: CurrentUser, task_id: int, fields: Dict[str, Any]) -> Task:
        task, assignee_ids = self._load(task_id)
        if not self.gate.can_mutate(user, task, assignee_ids):
            raise self._deny(user, "update", task)

        changes = clean_task_fields(fields)
        if changes:
            task = self.tasks.update(task, changes)
            self._commit("update a task")
            logger.info(f"Task {task.id} updated by user {user.user_id}: {sorted(changes)}")
        return task

    def delete_task(self, user: CurrentUser, task_id: int) -> None:
        task, _ = self._load(task_id)
        if not self.gate.can_delete(user, task):
            raise self._deny(user, "delete", task)

        task_id = task.id
        removed = self.tasks.delete(task)
        self._commit("delete a task")
        logger.info(f"Task {task_id} deleted by user {user.user_id} ({removed} assignments removed)")

    def assign_user(self, user: CurrentUser, task_id: int, target_user_id: int) -> bool:
        """
        Add ``target_user_id`` to the task's assignees.

        Returns True if the user was newly assigned and False if they already
        were; both count as success.
        """
        task, _ = self._load(task_id)
        if not self.gate.can_assign(user, task):
            raise self._deny(user, "assign users to", task)
        if not self.users.exists(target_user_id):
            raise ValidationError.for_field("user_id", "The selected user id is invalid.")

        task_id = task.id
        added = self.tasks.add_assignee(task_id, target_user_id)
        if added:
            self._commit("assign a user")
            logger.info(f"User {target_user_id} assigned to task {task_id} by user {user.user_id}")
        return added

"""
Persistence boundary for tasks and their assignees.

Relations are exposed as explicit queries returning plain sets and lists;
nothing here relies on lazily loaded ORM attributes.
"""
import logging
from typing import Any, Dict, List, Optional, Set

from sqlalchemy import delete, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models.task import Task, task_user
from ..models.user import User

logger = logging.getLogger(__name__)

# Fields a client may set on a task; anything else in a payload is ignored
MUTABLE_FIELDS = ("title", "description", "status", "priority", "due_date")


class TaskRepository:
    """Reads and writes ``tasks`` and ``task_user``. Callers own the commit."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, task_id: int) -> Optional[Task]:
        return self.db.get(Task, task_id)

    def create(self, creator_id: int, fields: Dict[str, Any]) -> Task:
        values = {k: v for k, v in fields.items() if k in MUTABLE_FIELDS and v is not None}
        task = Task(user_id=creator_id, **values)
        self.db.add(task)
        self.db.flush()
        self.db.refresh(task)
        return task

    def update(self, task: Task, fields: Dict[str, Any]) -> Task:
        for field, value in fields.items():
            if field in MUTABLE_FIELDS:
                setattr(task, field, value)
        self.db.flush()
        self.db.refresh(task)
        return task

    def delete(self, task: Task) -> int:
        """Delete a task and its assignment rows. Returns the number of assignment rows removed."""
        result = self.db.execute(delete(task_user).where(task_user.c.task_id == task.id))
        self.db.delete(task)
        self.db.flush()
        return result.rowcount

    # Assignees

    def get_assignee_ids(self, task_id: int) -> Set[int]:
        rows = self.db.execute(
            select(task_user.c.user_id).where(task_user.c.task_id == task_id)
        ).scalars()
        return set(rows)

    def get_assignees(self, task_id: int) -> List[User]:
        return list(self.db.execute(
            select(User)
            .join(task_user, task_user.c.user_id == User.id)
            .where(task_user.c.task_id == task_id)
            .order_by(User.id)
        ).scalars())

    def is_assigned(self, task_id: int, user_id: int) -> bool:
        return self.db.execute(
            select(task_user.c.task_id).where(
                task_user.c.task_id == task_id,
                task_user.c.user_id == user_id,
            )
        ).first() is not None

    def add_assignee(self, task_id: int, user_id: int) -> bool:
        """
        Insert the (task, user) pair if it is not there yet.

        Returns True when a row was written, False when the pair already
        existed. A concurrent insert of the same pair surfaces as an
        IntegrityError on the composite key and is treated as "already there";
        the session is rolled back in that case.
        """
        if self.is_assigned(task_id, user_id):
            return False
        try:
            self.db.execute(insert(task_user).values(task_id=task_id, user_id=user_id))
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            if self.is_assigned(task_id, user_id):
                logger.info(f"User {user_id} was assigned to task {task_id} concurrently")
                return False
            raise
        return True

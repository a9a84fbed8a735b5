"""
Who may do what with a task.

Pure predicates over a caller, a task and the task's assignee ids. They never
raise; the task service turns a ``False`` into ``Forbidden``.
"""
from typing import AbstractSet, Optional

from ..core.auth import CurrentUser
from ..core.config import MUTATION_SCOPES, get_settings
from ..models.task import Task


class TaskAuthorizationGate:
    """
    Task access policy.

    ``mutation_scope`` decides who may edit task fields: ``"creator"`` (the
    default) or ``"creator_or_assignee"``. Deleting and assigning stay
    creator-only under either scope.
    """

    def __init__(self, mutation_scope: Optional[str] = None):
        scope = mutation_scope or get_settings().task_mutation_scope
        if scope not in MUTATION_SCOPES:
            raise ValueError(f"Unknown mutation scope: {scope!r}")
        self.mutation_scope = scope

    @staticmethod
    def is_creator(user: CurrentUser, task: Task) -> bool:
        return user.user_id == task.user_id

    def can_view(self, user: CurrentUser, task: Task, assignee_ids: AbstractSet[int]) -> bool:
        return self.is_creator(user, task) or user.user_id in assignee_ids

    def can_mutate(self, user: CurrentUser, task: Task, assignee_ids: AbstractSet[int] = frozenset()) -> bool:
        if self.is_creator(user, task):
            return True
        return self.mutation_scope == "creator_or_assignee" and user.user_id in assignee_ids

    def can_delete(self, user: CurrentUser, task: Task) -> bool:
        return self.is_creator(user, task)

    def can_assign(self, user: CurrentUser, task: Task) -> bool:
        return self.is_creator(user, task)

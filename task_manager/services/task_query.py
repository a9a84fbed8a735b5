"""
Task listing: visibility filter, optional field filters, multi-key sort and
fixed-size pagination.

A caller sees a task when they created it or are assigned to it. Filters and
sort keys are given in their raw query-string form and interpreted here:

* ``status`` / ``priority`` / ``due_date`` narrow the result only when they
  are present and non-empty.
* ``sort`` is a comma-separated list such as ``"-due_date,created_at"``.
  Only ``due_date`` and ``created_at`` are honoured, other keys are ignored.
  Without a sort the newest tasks come first.
* ``id`` ascending is always the last ordering key, so equal sort values do
  not shuffle rows between pages.
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Generic, List, Optional, Tuple, TypeVar

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from ..core.auth import CurrentUser
from ..core.config import get_settings
from ..core.exceptions import ValidationError
from ..models.task import Task, TaskStatus, task_user

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = ("due_date", "created_at")
DEFAULT_SORT: Tuple[Tuple[str, bool], ...] = (("created_at", True),)

T = TypeVar("T")


def normalize_status(value: str) -> str:
    """Map any accepted spelling of a status onto its canonical value; unknown values pass through."""
    key = value.strip().lower().replace("_", "-").replace(" ", "-")
    if key == "inprogress":
        key = TaskStatus.IN_PROGRESS.value
    return key


def normalize_priority(value: str) -> str:
    return value.strip().lower()


def parse_due_date(value) -> date:
    """Accept a date, a datetime or an ISO string and keep only the calendar day."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        raise ValidationError.for_field("due_date", "The due date is not a valid date.")


def parse_sort(sort: Optional[str]) -> List[Tuple[str, bool]]:
    """
    Turn a sort expression into ``[(field, descending), ...]``.

    An absent or blank expression yields the default ordering. Unrecognized
    keys are dropped, so an expression made only of unknown keys yields an
    empty list (the id tie-breaker alone then orders the rows).
    """
    if sort is None or not sort.strip():
        return list(DEFAULT_SORT)

    keys = []
    for raw in sort.split(","):
        raw = raw.strip()
        descending = raw.startswith("-")
        name = raw.lstrip("-")
        if name in SORTABLE_FIELDS:
            keys.append((name, descending))
    return keys


def parse_page(page) -> int:
    """Page numbers start at 1; anything unusable falls back to the first page."""
    try:
        number = int(page)
    except (TypeError, ValueError):
        return 1
    return number if number >= 1 else 1


@dataclass
class TaskFilters:
    status: Optional[str] = None
    priority: Optional[str] = None
    due_date: Optional[date] = None

    @classmethod
    def from_query(
        cls,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        due_date: Optional[str] = None
    ) -> "TaskFilters":
        """Build filters from raw query values, treating empty strings as absent."""
        return cls(
            status=normalize_status(status) if status and status.strip() else None,
            priority=normalize_priority(priority) if priority and priority.strip() else None,
            due_date=parse_due_date(due_date) if due_date and str(due_date).strip() else None,
        )


@dataclass
class PagedResult(Generic[T]):
    items: List[T] = field(default_factory=list)
    total: int = 0
    page: int = 1
    per_page: int = 10

    @property
    def last_page(self) -> int:
        return max(1, math.ceil(self.total / self.per_page))

    @property
    def from_index(self) -> Optional[int]:
        if not self.items:
            return None
        return (self.page - 1) * self.per_page + 1

    @property
    def to_index(self) -> Optional[int]:
        if not self.items:
            return None
        return (self.page - 1) * self.per_page + len(self.items)


class TaskQuery:
    """Builds the listing statement for one caller."""

    def __init__(self, user: CurrentUser):
        self.user = user

    def visible(self):
        assigned = select(task_user.c.task_id).where(task_user.c.user_id == self.user.user_id)
        return select(Task).where(
            or_(Task.user_id == self.user.user_id, Task.id.in_(assigned))
        )

    @staticmethod
    def apply_filters(stmt, filters: TaskFilters):
        if filters.status:
            stmt = stmt.where(Task.status == filters.status)
        if filters.priority:
            stmt = stmt.where(Task.priority == filters.priority)
        if filters.due_date:
            # due_date is a DATE column, so equality is already a same-day match
            stmt = stmt.where(Task.due_date == filters.due_date)
        return stmt

    @staticmethod
    def apply_sort(stmt, sort_keys: List[Tuple[str, bool]]):
        order = []
        for name, descending in sort_keys:
            column = getattr(Task, name)
            order.append(column.desc() if descending else column.asc())
        order.append(Task.id.asc())
        return stmt.order_by(*order)

    def build(self, filters: TaskFilters, sort_keys: List[Tuple[str, bool]]):
        stmt = self.apply_filters(self.visible(), filters)
        return stmt, self.apply_sort(stmt, sort_keys)


def list_tasks(
    db: Session,
    user: CurrentUser,
    filters: Optional[TaskFilters] = None,
    sort: Optional[str] = None,
    page=1,
    per_page: Optional[int] = None
) -> PagedResult[Task]:
    """Return one page of the tasks ``user`` created or is assigned to."""
    filters = filters or TaskFilters()
    per_page = per_page or get_settings().page_size
    page = parse_page(page)

    filtered, ordered = TaskQuery(user).build(filters, parse_sort(sort))

    total = db.execute(
        select(func.count()).select_from(filtered.order_by(None).subquery())
    ).scalar_one()
    offset = (page - 1) * per_page
    # Past the last row there is nothing to fetch; huge offsets also overflow the driver
    items = [] if offset >= total else list(db.execute(
        ordered.offset(offset).limit(per_page)
    ).scalars())

    logger.debug(f"Listed {len(items)}/{total} tasks for {user} (page {page}, filters {filters})")
    return PagedResult(items=items, total=total, page=page, per_page=per_page)

from typing import List, Optional
from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session

from ..core.auth import CurrentUser, get_current_user
from ..core.database import get_db
from ..models.task import Task
from ..models.user import User
from ..schemas.task import AssignRequest, TaskCreate, TaskDetail, TaskPage, TaskResponse, TaskUpdate
from ..schemas.user import Message, UserOut
from ..services.task_query import TaskFilters
from ..services.task_service import TaskService

router = APIRouter()


def get_task_service(db: Session = Depends(get_db)) -> TaskService:
    return TaskService(db)


def to_detail(task: Task, assignees: List[User]) -> TaskDetail:
    detail = TaskDetail.model_validate(task)
    detail.assignees = [UserOut.model_validate(u) for u in assignees]
    return detail


@router.get("", response_model=TaskPage)
def list_tasks(
    status_filter: Optional[str] = Query(None, alias="status", description="Filter by status"),
    priority: Optional[str] = Query(None, description="Filter by priority"),
    due_date: Optional[str] = Query(None, description="Tasks due on this day (YYYY-MM-DD)"),
    sort: Optional[str] = Query(None, description="Comma-separated keys, '-' prefix for descending, e.g. -due_date,created_at"),
    page: Optional[str] = Query(None, description="Page number, 10 tasks per page"),
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service)
):
    """Tasks the caller created or is assigned to, filtered, sorted and paginated"""
    filters = TaskFilters.from_query(status=status_filter, priority=priority, due_date=due_date)
    result = service.list_tasks(current_user, filters=filters, sort=sort, page=page or 1)

    return TaskPage(
        data=[TaskResponse.model_validate(task) for task in result.items],
        total=result.total,
        per_page=result.per_page,
        current_page=result.page,
        last_page=result.last_page,
        from_=result.from_index,
        to=result.to_index
    )


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(
    task_data: TaskCreate,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service)
):
    """Create a new task owned by the authenticated user"""
    task = service.create_task(current_user, task_data.model_dump(exclude_unset=True))
    return TaskResponse.model_validate(task)


@router.get("/{task_id}", response_model=TaskDetail)
def get_task(
    task_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service)
):
    """Get a specific task by ID"""
    task, assignees = service.get_task_detail(current_user, task_id)
    return to_detail(task, assignees)


@router.put("/{task_id}", response_model=TaskResponse)
@router.patch("/{task_id}", response_model=TaskResponse)
def update_task(
    task_id: int,
    task_update: TaskUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service)
):
    """Update the fields present in the request body"""
    task = service.update_task(current_user, task_id, task_update.model_dump(exclude_unset=True))
    return TaskResponse.model_validate(task)


@router.delete("/{task_id}", response_model=Message)
def delete_task(
    task_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service)
):
    """Delete a task"""
    service.delete_task(current_user, task_id)
    return {"message": "Deleted successfully"}


@router.post("/{task_id}/assign", response_model=Message)
def assign_user(
    task_id: int,
    assignment: AssignRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service)
):
    """Assign another user to a task; assigning someone twice is a no-op"""
    service.assign_user(current_user, task_id, assignment.user_id)
    return {"message": "User assigned to task."}

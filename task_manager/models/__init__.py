"""Database models for Task Manager API."""
from .task import Task, TaskPriority, TaskStatus, task_user
from .user import AccessToken, User

__all__ = ["AccessToken", "Task", "TaskPriority", "TaskStatus", "User", "task_user"]

"""Task Manager API - task management with token auth and task assignment."""

__version__ = "1.0.0"
__author__ = "Task Manager Team"

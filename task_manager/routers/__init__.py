"""API routers for Task Manager API."""

"""Core modules for Task Manager API."""

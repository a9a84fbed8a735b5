"""Pydantic schemas for Task Manager API."""

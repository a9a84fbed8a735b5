"""Persistence boundary for users, tokens and tasks."""

# tests/conftest.py

from __future__ import annotations

import os

# Must be set before task_manager is imported: settings are read at import time.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["TASK_MUTATION_SCOPE"] = "creator"
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from task_manager.core.database import create_db_engine, get_db, init_db
from task_manager.core.security import get_password_hash
from task_manager.main import app
from task_manager.models import Task, User

BASE_TIME = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture()
def engine(tmp_path: Path):
    """A fresh SQLite database file per test, with the full schema created."""
    db_engine = create_db_engine(f"sqlite:///{tmp_path / 'tasks.sqlite3'}")
    init_db(max_retries=1, delay=0, bind=db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture()
def session_factory(engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory) -> Iterator[TestClient]:
    """TestClient whose requests run against the per-test database."""

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db: Session) -> Callable[..., User]:
    counter = {"n": 0}

    def _make_user(name: str | None = None, email: str | None = None, password: str = "secret123") -> User:
        counter["n"] += 1
        n = counter["n"]
        user = User(
            name=name or f"User {n}",
            email=email or f"user{n}@example.com",
            password_hash=get_password_hash(password),
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture()
def make_task(db: Session) -> Callable[..., Task]:
    """
    Insert a task row directly, bypassing the service.

    ``created_at`` defaults to one minute after the previous factory task so
    ordering by creation time is deterministic.
    """
    counter = {"n": 0}

    def _make_task(creator: User, **overrides) -> Task:
        counter["n"] += 1
        values = {
            "title": f"Task {counter['n']}",
            "status": "todo",
            "priority": "medium",
            "created_at": BASE_TIME + timedelta(minutes=counter["n"]),
        }
        values.update(overrides)
        task = Task(user_id=creator.id, **values)
        db.add(task)
        db.commit()
        db.refresh(task)
        return task

    return _make_task


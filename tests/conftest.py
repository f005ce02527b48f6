"""Shared fixtures: an app on in-memory SQLite, users and a logged-in client."""

from __future__ import annotations

import itertools

import pytest
from flask import g

from research_portal import create_app
from research_portal.db_models import User, db


@pytest.fixture
def app():
    app = create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test-secret",
            "SQLALCHEMY_DATABASE_URI": "sqlite://",
            "WTF_CSRF_ENABLED": False,
            "RATELIMIT_ENABLED": False,
            "AUTO_CREATE_DB": "1",
        }
    )
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


_uid_counter = itertools.count(1)


@pytest.fixture
def make_user(app):
    def _make(role: str = "faculty", **flags) -> User:
        n = next(_uid_counter)
        user = User(
            uid=flags.pop("uid", f"U{n:05d}"),
            email=f"user{n}@example.edu",
            full_name=flags.pop("full_name", f"User {n}"),
            role=role,
            **flags,
        )
        user.set_password("secret")
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def faculty(make_user):
    return make_user("faculty", full_name="Dr. Applicant")


@pytest.fixture
def reviewer(make_user):
    return make_user("faculty", full_name="DRD Reviewer", can_review=True)


@pytest.fixture
def approver(make_user):
    return make_user("faculty", full_name="DRD Approver", can_approve=True)


@pytest.fixture
def admin(make_user):
    return make_user("admin", full_name="Portal Admin", is_admin=True)


@pytest.fixture
def login(client):
    """Log a user in through the session cookie."""

    def _login(user: User):
        # The app context outlives requests, so drop the user Flask-Login cached.
        g.pop("_login_user", None)
        with client.session_transaction() as sess:
            sess["_user_id"] = str(user.id)
            sess["_fresh"] = True
        return client

    return _login

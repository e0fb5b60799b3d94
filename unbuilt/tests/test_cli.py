"""Tests for the maintenance CLI."""

import uuid

import pytest

from unbuilt.cli.main import main
from unbuilt.core.database import get_db
from unbuilt.core.models import User


@pytest.fixture
def email(db_engine):
    return f"cli-{uuid.uuid4().hex[:12]}@example.com"


def load(email):
    with get_db() as db:
        user = db.query(User).filter(User.email == email).one()
        db.expunge(user)
        return user


class TestUserCommands:
    """Tests for account maintenance commands."""

    def test_create_user(self, email, capsys):
        main(["create-user", email, "long-enough-pw", "--plan", "pro", "--admin"])

        user = load(email)
        assert user.plan == "pro"
        assert user.is_admin is True
        assert "on the pro plan" in capsys.readouterr().out

    def test_set_plan(self, email, capsys):
        main(["create-user", email, "long-enough-pw"])

        main(["set-plan", email, "enterprise"])

        assert load(email).plan == "enterprise"
        assert f"{email}: free -> enterprise" in capsys.readouterr().out

    def test_unlock_user(self, email):
        main(["create-user", email, "long-enough-pw"])
        with get_db() as db:
            user = db.query(User).filter(User.email == email).one()
            user.account_locked = True
            user.failed_login_attempts = 5

        main(["unlock-user", email])

        user = load(email)
        assert user.account_locked is False
        assert user.failed_login_attempts == 0

    def test_unknown_user(self, email):
        with pytest.raises(SystemExit):
            main(["set-plan", email, "pro"])

    def test_no_command(self):
        with pytest.raises(SystemExit):
            main([])


class TestServe:
    """Tests for the serve command."""

    def test_runs_uvicorn(self, monkeypatch):
        calls = []
        monkeypatch.setattr("uvicorn.run", lambda app, **kwargs: calls.append((app, kwargs)))

        main(["serve", "--port", "9000"])

        assert calls == [("unbuilt.api.main:app", {"host": "0.0.0.0", "port": 9000, "reload": False})]

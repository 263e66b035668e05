"""Unit tests for the get_db_session context manager."""

from unittest.mock import Mock

import pytest

import database


@pytest.fixture
def session(monkeypatch):
    session = Mock()
    monkeypatch.setattr(database, "SessionLocal", Mock(return_value=session))
    return session


def test_commits_on_success(session):
    with database.get_db_session() as db:
        assert db is session

    session.commit.assert_called_once_with()
    session.rollback.assert_not_called()
    session.close.assert_called_once_with()


def test_rolls_back_on_error(session):
    with pytest.raises(RuntimeError):
        with database.get_db_session():
            raise RuntimeError("boom")

    session.commit.assert_not_called()
    session.rollback.assert_called_once_with()
    session.close.assert_called_once_with()


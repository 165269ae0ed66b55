# tests/test_unit_of_work.py
"""Unit tests for the transaction boundary used by the schedule store."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from unittest.mock import MagicMock
from schoolpool.config import Settings, settings
from schoolpool.database import _engine_kwargs, unit_of_work
from schoolpool.exceptions import DuplicateSlotError


def make_factory():
    db = MagicMock()
    db.get_bind.return_value.dialect.name = "sqlite"
    return MagicMock(return_value=db), db


class TestUnitOfWork:
    def test_commits_on_success(self):
        factory, db = make_factory()
        with unit_of_work(factory) as session:
            session.add("row")
        db.commit.assert_called_once()
        db.rollback.assert_not_called()
        db.close.assert_called_once()

    def test_rolls_back_and_reraises(self):
        factory, db = make_factory()
        with pytest.raises(DuplicateSlotError):
            with unit_of_work(factory):
                raise DuplicateSlotError("taken")
        db.commit.assert_not_called()
        db.rollback.assert_called_once()
        db.close.assert_called_once()

    def test_failed_commit_rolls_back(self):
        factory, db = make_factory()
        db.commit.side_effect = RuntimeError("serialization failure")
        with pytest.raises(RuntimeError):
            with unit_of_work(factory):
                pass
        db.rollback.assert_called_once()
        db.close.assert_called_once()

    def test_statement_timeout_on_postgres(self):
        factory, db = make_factory()
        db.get_bind.return_value.dialect.name = "postgresql"
        with unit_of_work(factory):
            pass
        statement = str(db.execute.call_args[0][0])
        assert statement == "SET LOCAL statement_timeout = 10000"

    def test_no_timeout_statement_on_sqlite(self):
        factory, db = make_factory()
        with unit_of_work(factory):
            pass
        db.execute.assert_not_called()


class TestEngineSettings:
    def test_default_isolation_is_read_committed(self):
        assert Settings.model_fields["TRANSACTION_ISOLATION_LEVEL"].default == "READ COMMITTED"

    def test_isolation_level_applied_to_server_databases(self):
        kwargs = _engine_kwargs("postgresql://carpool@localhost/schoolpool")
        assert kwargs["isolation_level"] == settings.TRANSACTION_ISOLATION_LEVEL
        assert kwargs["pool_pre_ping"] is True

    def test_sqlite_keeps_driver_defaults(self):
        kwargs = _engine_kwargs("sqlite://")
        assert "isolation_level" not in kwargs
        assert kwargs["connect_args"] == {"check_same_thread": False}

"""Tests for the shared PostgreSQL pool: psycopg2 is mocked."""

from unittest.mock import MagicMock

import psycopg2
import pytest

from credentia.db import connection


@pytest.fixture
def pool_class(monkeypatch, clean_env):
    """Replace ThreadedConnectionPool with a mock and reset the module pool."""
    monkeypatch.setenv("CREDENTIA_DB_POOL_MAX", "3")
    cls = MagicMock()
    cls.return_value.closed = False
    monkeypatch.setattr(connection.psycopg2.pool, "ThreadedConnectionPool", cls)
    monkeypatch.setattr(connection, "_pool", None)
    yield cls
    monkeypatch.setattr(connection, "_pool", None)


class TestPool:
    def test_opened_once_with_config(self, pool_class):
        assert connection.get_pool() is connection.get_pool()
        pool_class.assert_called_once()
        args, kwargs = pool_class.call_args
        assert args == (1, 3)
        assert kwargs["dbname"] == "credentia"

    def test_reopened_after_close(self, pool_class):
        first = connection.get_pool()
        connection.close_pool()
        first.closeall.assert_called_once()
        connection.get_pool()
        assert pool_class.call_count == 2

    def test_unreachable_database(self, pool_class):
        pool_class.side_effect = psycopg2.OperationalError("refused")
        with pytest.raises(ConnectionError, match="CREDENTIA_DB_"):
            connection.get_pool()


class TestGetConnection:
    def test_commits_and_returns(self, pool_class):
        pool = pool_class.return_value
        conn = pool.getconn.return_value
        with connection.get_connection() as c:
            assert c is conn
        conn.commit.assert_called_once()
        conn.rollback.assert_not_called()
        pool.putconn.assert_called_once_with(conn)

    def test_rolls_back_on_error(self, pool_class):
        pool = pool_class.return_value
        conn = pool.getconn.return_value
        with pytest.raises(RuntimeError):
            with connection.get_connection():
                raise RuntimeError("boom")
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()
        pool.putconn.assert_called_once_with(conn)

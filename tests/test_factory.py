# ==============================================================================
# Tests for Collector Wiring
# ==============================================================================
"""
Tests for the collector factory, settings and schema rendering.

build_services() opens no connections, so it can be exercised without
PostgreSQL or Valkey running.
"""

import threading
from unittest.mock import MagicMock

import psycopg2
import pytest
from psycopg2.pool import PoolError

from postmetric.collector.factory import build_services, get_spike_policy
from postmetric.core.attack_mode import BaselineSpikePolicy, ThresholdSpikePolicy
from postmetric.infrastructure.repositories.postgresql import (
    PostgreSQLConnectionPool,
    _add_connect_timeout,
    _insert_sql,
)
from postmetric.utils.config import (
    AttackModeSettings,
    GeolocationSettings,
    PostgresSettings,
    Settings,
)
from postmetric.utils.db import render_schema_sql


class TestGetSpikePolicy:
    """Tests for get_spike_policy()."""

    def test_threshold(self):
        assert isinstance(get_spike_policy(AttackModeSettings()), ThresholdSpikePolicy)

    def test_baseline(self):
        policy = get_spike_policy(AttackModeSettings(policy="baseline", baseline_multiplier=4))
        assert isinstance(policy, BaselineSpikePolicy)
        assert policy.multiplier == 4

    def test_unknown(self):
        settings = AttackModeSettings.model_construct(policy="random")
        with pytest.raises(ValueError, match="Unknown spike policy"):
            get_spike_policy(settings)


class TestBuildServices:
    """Tests for build_services()."""

    def test_wires_handler_and_tracker(self):
        settings = Settings(geolocation=GeolocationSettings(enabled=False))
        services = build_services(settings)
        try:
            assert services.handler.tracking == settings.tracking
            assert services.goal_tracker.visitor_cookie == settings.tracking.visitor_cookie_name
        finally:
            services.close()


class TestSettings:
    """Tests for environment-driven settings."""

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("TRACKING_SESSION_COOKIE_NAME", "sid")
        monkeypatch.setenv("ATTACK_MODE_PER_IP_LIMIT", "25")
        monkeypatch.setenv("PG_SCHEMA_NAME", "analytics")

        settings = Settings()

        assert settings.tracking.session_cookie_name == "sid"
        assert settings.attack_mode.per_ip_limit == 25
        assert settings.postgres.schema_name == "analytics"

    def test_valkey_url(self, monkeypatch):
        monkeypatch.setenv("VALKEY_PASSWORD", "secret")
        monkeypatch.setenv("VALKEY_SSL", "true")
        assert Settings().valkey.url == "rediss://:secret@localhost:6379/0"


class TestPostgresHelpers:
    """Tests for SQL helpers and schema rendering."""

    def test_connect_timeout_added_once(self):
        url = "postgresql://u:p@h:5432/db?sslmode=prefer"
        with_timeout = _add_connect_timeout(url)
        assert with_timeout.endswith("&connect_timeout=10")
        assert _add_connect_timeout(with_timeout) == with_timeout

    def test_insert_sql(self):
        sql = _insert_sql("pm.page_views", ("site_id", "path"))
        assert sql == "INSERT INTO pm.page_views (site_id, path) VALUES (%(site_id)s, %(path)s)"

    def test_schema_rendered_with_name(self):
        sql = render_schema_sql("analytics")
        assert "CREATE SCHEMA IF NOT EXISTS analytics" in sql
        assert "analytics.page_views" in sql
        assert "{{" not in sql


class TestPostgreSQLConnectionPool:
    """Borrowing from the pool under more threads than connections."""

    @pytest.fixture()
    def pool(self, monkeypatch):
        monkeypatch.setattr(psycopg2, "connect", lambda *args, **kwargs: MagicMock())
        postgres = PostgresSettings(
            pool_min_connections=1, pool_max_connections=1, pool_acquire_timeout_seconds=5
        )
        pool = PostgreSQLConnectionPool(Settings(postgres=postgres))
        yield pool
        pool.close()

    def test_exhausted_pool_waits_for_a_free_connection(self, pool):
        holding = threading.Event()
        release = threading.Event()
        borrowed = threading.Event()
        errors = []

        def hold():
            with pool.connection():
                holding.set()
                release.wait(5)

        def borrow():
            try:
                with pool.connection():
                    borrowed.set()
            except Exception as e:
                errors.append(e)

        holder = threading.Thread(target=hold)
        holder.start()
        assert holding.wait(5)

        waiter = threading.Thread(target=borrow)
        waiter.start()
        assert not borrowed.wait(0.2)

        release.set()
        holder.join(5)
        waiter.join(5)

        assert borrowed.is_set()
        assert errors == []

    def test_times_out_with_pool_error(self, pool):
        pool._acquire_timeout = 0.05
        with pool.connection():
            with pytest.raises(PoolError, match="No PostgreSQL connection free"):
                with pool.connection():
                    pass

    def test_rolls_back_and_returns_connection_on_error(self, pool):
        with pytest.raises(RuntimeError):
            with pool.connection() as conn:
                raise RuntimeError("boom")
        conn.rollback.assert_called_once()
        with pool.connection():
            pass

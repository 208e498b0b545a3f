# ==============================================================================
# PostgreSQL Repository Implementations
# ==============================================================================
"""
PostgreSQL implementations of the repository interfaces.

Provides:
- PostgreSQLConnectionPool: Thread-safe pool shared by all repositories
- PostgreSQLSiteRepository: Site lookup and conditional attack-mode activation
- PostgreSQLSessionRepository: Session lookup and upsert
- PostgreSQLPageViewRepository: Append-only pageview inserts
- PostgreSQLGoalRepository: Goal lookup and goal event inserts

Every write is one statement in its own transaction, so concurrent requests
never hold row locks across calls.
"""

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime

import psycopg2
from psycopg2.extras import Json, RealDictCursor
from psycopg2.pool import PoolError, ThreadedConnectionPool

from postmetric.base.repositories import (
    GoalRepository,
    PageViewRepository,
    SessionRepository,
    SiteRepository,
)
from postmetric.core.models import Goal, GoalEvent, PageView, Session, Site
from postmetric.utils.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Connection timeout
CONNECT_TIMEOUT = 10

SESSION_COLUMNS = (
    "site_id",
    "session_id",
    "visitor_id",
    "first_visit_at",
    "last_seen_at",
    "page_views",
    "bounce",
    "duration",
    "referrer",
    "referrer_domain",
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "channel",
    "device",
    "browser",
    "browser_version",
    "os",
    "os_version",
    "country",
    "region",
    "city",
    "latitude",
    "longitude",
)

# Columns a later hit may change; attribution, device and location stay as
# captured by the first hit.
SESSION_UPDATE_COLUMNS = ("visitor_id", "last_seen_at", "page_views", "bounce", "duration")

PAGE_VIEW_COLUMNS = (
    "site_id",
    "session_id",
    "visitor_id",
    "path",
    "hostname",
    "title",
    "event_type",
    "referrer",
    "referrer_path",
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "device",
    "browser",
    "browser_version",
    "os",
    "os_version",
    "country",
    "region",
    "city",
    "latitude",
    "longitude",
    "exit_url",
    "exit_link_text",
    "timestamp",
)


def _add_connect_timeout(conn_string: str) -> str:
    """Add connect_timeout to connection string if not present."""
    if "connect_timeout" not in conn_string:
        separator = "&" if "?" in conn_string else "?"
        return f"{conn_string}{separator}connect_timeout={CONNECT_TIMEOUT}"
    return conn_string


def _insert_sql(table: str, columns: tuple[str, ...]) -> str:
    names = ", ".join(columns)
    values = ", ".join(f"%({column})s" for column in columns)
    return f"INSERT INTO {table} ({names}) VALUES ({values})"


class PostgreSQLConnectionPool:
    """
    Thread-safe psycopg2 connection pool.

    Request handlers run in a thread pool that is larger than the connection
    pool, so borrowers wait on a semaphore for a free connection instead of
    hitting psycopg2's PoolError when every connection is checked out.
    """

    def __init__(self, settings: Settings | None = None):
        """
        Initialize the pool.

        Args:
            settings: Application settings. If None, uses get_settings().
        """
        self._settings = settings or get_settings()
        pg = self._settings.postgres
        self._schema = pg.schema_name
        self._acquire_timeout = pg.pool_acquire_timeout_seconds
        self._slots = threading.BoundedSemaphore(pg.pool_max_connections)
        self._open_lock = threading.Lock()
        self._pool: ThreadedConnectionPool | None = None

    @property
    def schema(self) -> str:
        """Get the database schema name."""
        return self._schema

    def open(self) -> None:
        """Create the underlying pool. Safe to call more than once."""
        with self._open_lock:
            if self._pool is not None:
                return
            pg = self._settings.postgres
            self._pool = ThreadedConnectionPool(
                pg.pool_min_connections,
                pg.pool_max_connections,
                _add_connect_timeout(pg.connection_string),
            )
        logger.info(
            "PostgreSQL pool opened (schema=%s, max=%d)", self._schema, pg.pool_max_connections
        )

    @contextmanager
    def connection(self) -> Iterator[psycopg2.extensions.connection]:
        """
        Borrow a connection for one transaction.

        Blocks up to pool_acquire_timeout_seconds while all connections are
        in use. Commits when the block exits normally, rolls back when it
        raises.

        Raises:
            PoolError: No connection became free within the timeout.
        """
        if not self._slots.acquire(timeout=self._acquire_timeout):
            raise PoolError(
                f"No PostgreSQL connection free after {self._acquire_timeout:g}s"
            )
        try:
            if self._pool is None:
                self.open()
            conn = self._pool.getconn()
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                self._pool.putconn(conn)
        finally:
            self._slots.release()

    def close(self) -> None:
        """Close all pooled connections."""
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
            logger.info("PostgreSQL pool closed")


class PostgreSQLSiteRepository(SiteRepository):
    """PostgreSQL implementation of SiteRepository."""

    def __init__(self, pool: PostgreSQLConnectionPool):
        self._pool = pool
        self._table = f"{pool.schema}.sites"

    def get_by_tracking_code(self, tracking_code: str) -> Site | None:
        with self._pool.connection() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    f"""
                    SELECT id, tracking_code, domain, settings
                    FROM {self._table}
                    WHERE tracking_code = %s
                    """,
                    (tracking_code,),
                )
                row = cur.fetchone()
        if row is None:
            return None
        return Site.model_validate(dict(row, settings=row["settings"] or {}))

    def activate_attack_mode(self, site_id: str, activated_at: datetime) -> bool:
        """
        Set attackMode.enabled and activatedAt unless already enabled.

        The WHERE clause makes activation idempotent under concurrent spikes:
        only one request sees a row updated.
        """
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    UPDATE {self._table}
                    SET settings = settings || jsonb_build_object(
                        'attackMode',
                        COALESCE(settings->'attackMode', '{{}}'::jsonb)
                            || jsonb_build_object('enabled', true, 'activatedAt', %s::text)
                    )
                    WHERE id = %s
                    AND NOT COALESCE((settings->'attackMode'->>'enabled')::boolean, false)
                    """,
                    (activated_at.isoformat(), site_id),
                )
                return cur.rowcount > 0


class PostgreSQLSessionRepository(SessionRepository):
    """
    PostgreSQL implementation of SessionRepository.

    Sessions are upserted using ON CONFLICT ... DO UPDATE; concurrent updates
    to the same session are last-writer-wins.
    """

    def __init__(self, pool: PostgreSQLConnectionPool):
        self._pool = pool
        self._table = f"{pool.schema}.sessions"

    def get(self, site_id: str, session_id: str) -> Session | None:
        with self._pool.connection() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    f"""
                    SELECT {", ".join(SESSION_COLUMNS)}
                    FROM {self._table}
                    WHERE site_id = %s AND session_id = %s
                    """,
                    (site_id, session_id),
                )
                row = cur.fetchone()
        return Session.model_validate(dict(row)) if row else None

    def find_recent_for_visitor(
        self, site_id: str, visitor_id: str, since: datetime
    ) -> Session | None:
        with self._pool.connection() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    f"""
                    SELECT {", ".join(SESSION_COLUMNS)}
                    FROM {self._table}
                    WHERE site_id = %s AND visitor_id = %s AND last_seen_at >= %s
                    ORDER BY last_seen_at DESC
                    LIMIT 1
                    """,
                    (site_id, visitor_id, since),
                )
                row = cur.fetchone()
        return Session.model_validate(dict(row)) if row else None

    def save(self, session: Session) -> None:
        updates = ", ".join(f"{column} = EXCLUDED.{column}" for column in SESSION_UPDATE_COLUMNS)
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    {_insert_sql(self._table, SESSION_COLUMNS)}
                    ON CONFLICT (site_id, session_id) DO UPDATE SET {updates}
                    """,
                    session.to_db_record(),
                )
        logger.debug("Upserted session %s", session.session_id)


class PostgreSQLPageViewRepository(PageViewRepository):
    """PostgreSQL implementation of PageViewRepository."""

    def __init__(self, pool: PostgreSQLConnectionPool):
        self._pool = pool
        self._table = f"{pool.schema}.page_views"

    def save(self, page_view: PageView) -> None:
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(_insert_sql(self._table, PAGE_VIEW_COLUMNS), page_view.to_db_record())


class PostgreSQLGoalRepository(GoalRepository):
    """PostgreSQL implementation of GoalRepository."""

    def __init__(self, pool: PostgreSQLConnectionPool):
        self._pool = pool
        self._goals = f"{pool.schema}.goals"
        self._events = f"{pool.schema}.goal_events"

    def find_by_event(self, site_id: str, event: str) -> Goal | None:
        with self._pool.connection() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    f"SELECT id, site_id, event, name FROM {self._goals} "
                    "WHERE site_id = %s AND event = %s",
                    (site_id, event),
                )
                row = cur.fetchone()
        return Goal.model_validate(dict(row)) if row else None

    def save_event(self, goal_event: GoalEvent) -> None:
        columns = tuple(GoalEvent.model_fields)
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(_insert_sql(self._events, columns), goal_event.model_dump())


def upsert_site(pool: PostgreSQLConnectionPool, site: Site) -> None:
    """
    Insert or replace a site row.

    Sites are owned by the dashboard; this exists for seeding local
    environments from the CLI.
    """
    with pool.connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO {pool.schema}.sites (id, tracking_code, domain, settings)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (id) DO UPDATE SET
                    tracking_code = EXCLUDED.tracking_code,
                    domain = EXCLUDED.domain,
                    settings = EXCLUDED.settings
                """,
                (
                    site.id,
                    site.tracking_code,
                    site.domain,
                    Json(site.settings.model_dump(mode="json", by_alias=True)),
                ),
            )

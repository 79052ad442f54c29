"""
Relational session store on SQLAlchemy's async engine.

Works with SQLite (aiosqlite), PostgreSQL (asyncpg) and MySQL or MariaDB
(aiomysql). None of them expires rows on its own, so load() filters on the
stored expiry and delete_expired() must be run periodically by an
ExpirySweeper.

Table schema:
    id          string primary key
    data        binary, the encoded record
    expiry_date double, unix epoch seconds (indexed)
    user_id     nullable string (indexed), optional projection of the
                owning user taken from the session data
    user_agent  nullable string, projected next to user_id
"""

import logging
from functools import partial
from typing import Any, Callable, Optional

from sqlalchemy import (
    Column,
    Double,
    Index,
    LargeBinary,
    MetaData,
    String,
    Table,
    delete,
    func,
    insert,
    select,
    text,
)
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.sql.dml import Insert

from sessionstores.errors import ConfigurationError
from sessionstores.session.codec import decode_record, encode_record
from sessionstores.session.naming import validate_sql_identifier
from sessionstores.session.record import SessionRecord
from sessionstores.session.store import (
    Clock,
    DEFAULT_MAX_CREATE_ATTEMPTS,
    ExpiredDeletion,
    SessionStore,
)

logger = logging.getLogger(__name__)

# Columns rewritten when save() hits an existing row
_UPDATED_COLUMNS = ("data", "expiry_date", "user_id", "user_agent")


def _upsert_on_conflict(
    insert_fn: Callable[[Table], Any],
    table: Table,
    row: dict[str, Any],
) -> Insert:
    stmt = insert_fn(table).values(**row)
    return stmt.on_conflict_do_update(
        index_elements=[table.c.id],
        set_={name: stmt.excluded[name] for name in _UPDATED_COLUMNS},
    )


def _upsert_on_duplicate_key(table: Table, row: dict[str, Any]) -> Insert:
    stmt = mysql.insert(table).values(**row)
    return stmt.on_duplicate_key_update(
        {name: stmt.inserted[name] for name in _UPDATED_COLUMNS}
    )


_UPSERTS = {
    "sqlite": partial(_upsert_on_conflict, sqlite.insert),
    "postgresql": partial(_upsert_on_conflict, postgresql.insert),
    "mysql": _upsert_on_duplicate_key,
    "mariadb": _upsert_on_duplicate_key,
}


def build_sessions_table(table_name: str, metadata: Optional[MetaData] = None) -> Table:
    """Describe the sessions table, including its expiry and user indexes."""
    validate_sql_identifier(table_name)
    return Table(
        table_name,
        metadata if metadata is not None else MetaData(),
        Column("id", String(64), primary_key=True),
        Column(
            "data",
            LargeBinary().with_variant(mysql.LONGBLOB(), "mysql", "mariadb"),
            nullable=False,
        ),
        Column("expiry_date", Double, nullable=False),
        Column("user_id", String(255), nullable=True),
        Column("user_agent", String(512), nullable=True),
        Index(f"{table_name}_expiry_date_idx", "expiry_date"),
        Index(f"{table_name}_user_id_idx", "user_id"),
    )


def _projected(owner: dict[str, Any], key: str) -> Optional[str]:
    value = owner.get(key)
    return None if value is None else str(value)


class SqlSessionStore(SessionStore, ExpiredDeletion):
    """
    Session store for SQL databases.

    create() inserts and treats a primary-key violation as a collision;
    each attempt runs in its own short transaction. save() is a dialect
    upsert (ON CONFLICT for SQLite and PostgreSQL, ON DUPLICATE KEY for
    MySQL and MariaDB).

    When user_id_data_key is set, record.data[user_id_data_key] is expected
    to be a mapping; its "user_id" value is copied into the indexed user_id
    column so all sessions of a user can be found or revoked at once, and
    its "user_agent" value into the user_agent column.
    """

    backend_name = "sql"
    backend_exceptions = (SQLAlchemyError,)

    def __init__(
        self,
        engine: Optional[AsyncEngine] = None,
        database_url: Optional[str] = None,
        table_name: str = "sessions",
        user_id_data_key: Optional[str] = None,
        clock: Optional[Clock] = None,
        max_create_attempts: int = DEFAULT_MAX_CREATE_ATTEMPTS,
        id_generator=None,
        **engine_kwargs: Any,
    ):
        """
        Initialize the SQL session store.

        Args:
            engine: An existing AsyncEngine. The store does not dispose
                injected engines.
            database_url: SQLAlchemy async URL used when no engine is given
                (e.g. "sqlite+aiosqlite:///sessions.db").
            table_name: Sessions table, validated as a SQL identifier.
            user_id_data_key: Data key whose mapping holds "user_id" and
                "user_agent".
            clock: Source of "now" for expiry filtering and sweeps.
            max_create_attempts: Identifier attempts before create() gives up.
            id_generator: Produces fresh identifiers.
            **engine_kwargs: Passed to create_async_engine.

        Raises:
            ConfigurationError: For an invalid table name or a dialect
                without upsert support.
        """
        super().__init__(
            clock=clock,
            max_create_attempts=max_create_attempts,
            id_generator=id_generator,
        )
        self.table_name = validate_sql_identifier(table_name)
        if engine is None:
            if not database_url:
                raise ValueError("Either engine or database_url must be provided")
            engine = create_async_engine(database_url, **engine_kwargs)
            self._owns_engine = True
        else:
            self._owns_engine = False

        dialect = engine.dialect.name
        if dialect not in _UPSERTS:
            raise ConfigurationError(
                f"Unsupported SQL dialect '{dialect}'. "
                f"Supported dialects: {', '.join(sorted(_UPSERTS))}",
                invalid_fields={"database_url": dialect},
            )

        self.engine = engine
        self.user_id_data_key = user_id_data_key
        self._upsert = _UPSERTS[dialect]
        self._metadata = MetaData()
        self.table = build_sessions_table(self.table_name, self._metadata)

    async def ensure_schema(self) -> None:
        """Create the sessions table and its indexes if they do not exist."""
        with self._backend_call("ensure_schema"):
            async with self.engine.begin() as conn:
                await conn.run_sync(self._metadata.create_all)
        logger.info("Session table ready", extra={
            "extra_data": {"table": self.table_name}
        })

    def _row(self, record: SessionRecord) -> dict[str, Any]:
        owner = self._owner(record)
        return {
            "id": record.id,
            "data": encode_record(record),
            "expiry_date": record.expiry_date.timestamp(),
            "user_id": _projected(owner, "user_id"),
            "user_agent": _projected(owner, "user_agent"),
        }

    def _owner(self, record: SessionRecord) -> dict[str, Any]:
        if self.user_id_data_key is None:
            return {}
        owner = record.data.get(self.user_id_data_key)
        return owner if isinstance(owner, dict) else {}

    def upsert_statement(self, row: dict[str, Any]) -> Insert:
        """Build the dialect's insert-or-update statement for one row."""
        return self._upsert(self.table, row)

    async def _try_create(self, record: SessionRecord) -> bool:
        row = self._row(record)
        with self._backend_call("create", record.id):
            try:
                async with self.engine.begin() as conn:
                    await conn.execute(insert(self.table).values(**row))
            except IntegrityError:
                if await self._exists(record.id):
                    return False
                raise
        return True

    async def _exists(self, session_id: str) -> bool:
        stmt = select(self.table.c.id).where(self.table.c.id == session_id)
        async with self.engine.connect() as conn:
            return (await conn.execute(stmt)).first() is not None

    async def save(self, record: SessionRecord) -> None:
        self._require_id(record)
        stmt = self.upsert_statement(self._row(record))
        with self._backend_call("save", record.id):
            async with self.engine.begin() as conn:
                await conn.execute(stmt)

    async def load(self, session_id: str) -> Optional[SessionRecord]:
        stmt = select(self.table.c.data).where(
            self.table.c.id == session_id,
            self.table.c.expiry_date > self.now().timestamp(),
        )
        with self._backend_call("load", session_id):
            async with self.engine.connect() as conn:
                payload = (await conn.execute(stmt)).scalar_one_or_none()

        if payload is None:
            return None
        return decode_record(bytes(payload))

    async def delete(self, session_id: str) -> None:
        with self._backend_call("delete", session_id):
            async with self.engine.begin() as conn:
                await conn.execute(delete(self.table).where(self.table.c.id == session_id))

    async def delete_expired(self) -> None:
        stmt = delete(self.table).where(
            self.table.c.expiry_date <= self.now().timestamp()
        )
        with self._backend_call("delete_expired"):
            async with self.engine.begin() as conn:
                result = await conn.execute(stmt)
        logger.debug("Expired SQL sessions deleted", extra={
            "extra_data": {"table": self.table_name, "count": result.rowcount}
        })

    async def delete_by_user_id(self, user_id: str) -> int:
        """
        Delete every session owned by a user, expired or not.

        Returns:
            The number of rows removed.
        """
        stmt = delete(self.table).where(self.table.c.user_id == user_id)
        with self._backend_call("delete_by_user_id"):
            async with self.engine.begin() as conn:
                result = await conn.execute(stmt)
        return result.rowcount

    async def count_for_user(self, user_id: str) -> int:
        """Number of live sessions owned by a user."""
        stmt = select(func.count()).select_from(self.table).where(
            self.table.c.user_id == user_id,
            self.table.c.expiry_date > self.now().timestamp(),
        )
        with self._backend_call("count_for_user"):
            async with self.engine.connect() as conn:
                return (await conn.execute(stmt)).scalar_one()

    async def health_check(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception:
            return False

    async def close(self) -> None:
        if self._owns_engine:
            await self.engine.dispose()

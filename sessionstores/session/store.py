"""
Session store abstraction.

This module defines the contract every backend adapter implements:
create, save, load and delete of SessionRecord objects, with expiry-aware
reads and collision-safe identifier assignment. Backends without native
per-record expiration additionally implement ExpiredDeletion so expired
rows can be swept periodically.

All methods are async to support non-blocking I/O with the storage
engines behind the adapters.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Callable, Iterator, Optional, Union

from sessionstores.errors import BackendError, IdentifierExhaustedError, SessionStoreError
from sessionstores.session.identifier import generate_session_id
from sessionstores.session.record import SessionRecord, utc_now
from sessionstores.session.sweeper import ExpirySweeper
from sessionstores.telemetry import backend_span

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

DEFAULT_MAX_CREATE_ATTEMPTS = 16


class SessionStore(ABC):
    """
    Abstract base class for session storage implementations.

    Subclasses provide the engine-specific primitives (_try_create, save,
    load, delete); the identifier retry loop in create() is shared so every
    backend gets the same collision handling.

    Attributes:
        backend_name: Short backend name used in logs, spans and errors.
        native_expiration: True when the engine evicts expired records on
            its own, so no sweeper is needed.
        backend_exceptions: Client exception types translated into
            BackendError by _backend_call().
        max_create_attempts: Upper bound on identifiers tried by create().
    """

    backend_name = "abstract"
    native_expiration = False
    backend_exceptions: tuple[type[BaseException], ...] = ()

    def __init__(
        self,
        clock: Optional[Clock] = None,
        max_create_attempts: int = DEFAULT_MAX_CREATE_ATTEMPTS,
        id_generator: Optional[Callable[[], str]] = None,
    ):
        """
        Initialize shared store state.

        Args:
            clock: Source of "now" for expiry checks. Defaults to UTC wall
                clock time.
            max_create_attempts: How many identifiers create() tries before
                giving up with IdentifierExhaustedError.
            id_generator: Produces fresh identifiers. Defaults to
                generate_session_id.
        """
        if max_create_attempts < 1:
            raise ValueError("max_create_attempts must be at least 1")
        self._clock = clock or utc_now
        self._id_generator = id_generator or generate_session_id
        self.max_create_attempts = max_create_attempts

    def now(self) -> datetime:
        """Current time according to this store's clock."""
        return self._clock()

    async def create(self, record: SessionRecord) -> None:
        """
        Persist a new record under an identifier nobody else holds.

        Assigns an identifier if the record has none. When the backend
        reports the identifier as taken, a new one is generated and the
        insert is tried again as an independent operation. record.id is
        updated in place and holds the committed identifier on return.

        Args:
            record: The record to create.

        Raises:
            IdentifierExhaustedError: If max_create_attempts identifiers
                were all taken.
            EncodeError: If the record data cannot be serialized.
            BackendError: If the storage engine fails.
        """
        if record.id is None:
            record.id = self._id_generator()

        for attempt in range(1, self.max_create_attempts + 1):
            if attempt > 1:
                record.id = self._id_generator()
            if await self._try_create(record):
                logger.debug("Session created", extra={
                    "extra_data": {"backend": self.backend_name, "attempts": attempt}
                })
                return
            logger.warning("Session identifier collision, regenerating", extra={
                "extra_data": {"backend": self.backend_name, "attempt": attempt}
            })

        raise IdentifierExhaustedError(
            self.max_create_attempts, details={"backend": self.backend_name}
        )

    @abstractmethod
    async def _try_create(self, record: SessionRecord) -> bool:
        """
        Insert the record only if its identifier is free.

        Must be atomic against the backend: a native insert-if-absent
        primitive or an insert that fails on the primary key.

        Returns:
            True if the record was written, False if the identifier was
            already present.
        """

    @abstractmethod
    async def save(self, record: SessionRecord) -> None:
        """
        Create or overwrite the record under its identifier.

        Args:
            record: The record to store. Must already have an id.

        Raises:
            ValueError: If record.id is None.
            EncodeError: If the record data cannot be serialized.
            BackendError: If the storage engine fails.
        """

    @abstractmethod
    async def load(self, session_id: str) -> Optional[SessionRecord]:
        """
        Retrieve a live record by identifier.

        Returns:
            The record if it exists and its expiry_date is after now,
            otherwise None.

        Raises:
            DecodeError: If the stored bytes are corrupt.
            BackendError: If the storage engine fails.
        """

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        """
        Delete a record by identifier.

        This operation is idempotent - deleting a non-existent
        session does not raise an error.
        """

    async def ensure_schema(self) -> None:
        """
        Create the destination namespace and its expiry index if missing.

        Safe to call on every startup. Schemaless backends do nothing.
        """

    async def health_check(self) -> bool:
        """
        Check connectivity and health of the backend.

        Returns:
            True if the store is healthy and accessible, False otherwise.

        Note:
            This method should not raise exceptions - connectivity issues
            should be caught and result in a False return value.
        """
        return True

    async def close(self) -> None:
        """Release resources the store created itself."""

    async def __aenter__(self) -> "SessionStore":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _is_live(self, record: SessionRecord) -> bool:
        return record.expiry_date > self.now()

    @staticmethod
    def _require_id(record: SessionRecord) -> str:
        if record.id is None:
            raise ValueError("Cannot save a session record without an id; use create()")
        return record.id

    @contextmanager
    def _backend_call(self, operation: str, session_id: Optional[str] = None) -> Iterator[None]:
        """
        Wrap one backend call in a span and translate client exceptions.

        Client errors listed in backend_exceptions become BackendError with
        the original exception chained.
        """
        attributes: dict[str, Any] = {}
        if session_id is not None:
            attributes["session.id.prefix"] = session_id[:4]
        with backend_span(self.backend_name, operation, attributes):
            try:
                yield
            except SessionStoreError:
                raise
            except self.backend_exceptions as e:
                raise BackendError(
                    f"{self.backend_name} {operation} failed: {e}",
                    details={"backend": self.backend_name, "operation": operation},
                ) from e


class ExpiredDeletion(ABC):
    """
    Capability of stores that need expired records swept explicitly.

    Implemented by backends without native per-record expiration, or whose
    native expiration is lazy.
    """

    @abstractmethod
    async def delete_expired(self) -> None:
        """
        Delete every record whose expiry_date is at or before now.

        Runs as a single bulk operation and is safe to call repeatedly and
        concurrently with other store operations.
        """

    async def continuously_delete_expired(
        self, interval: Union[float, timedelta]
    ) -> None:
        """
        Sweep expired records every interval until cancelled.

        Intended to be spawned as a task; cancelling the task stops the
        loop at its next wait.
        """
        await ExpirySweeper(self, interval).run()

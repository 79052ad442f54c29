"""
MongoDB session store using pymongo's asyncio client.

Documents look like ``{_id: <session id>, data: <encoded record>,
expiry_date: <datetime>}``. ensure_schema() creates a TTL index on
expiry_date, but MongoDB's TTL monitor only runs about once a minute, so
load() still filters on expiry and delete_expired() is available for an
ExpirySweeper.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from bson import Binary
from pymongo.errors import DuplicateKeyError, PyMongoError

from sessionstores.errors import NotConnectedError
from sessionstores.session.codec import decode_record, encode_record
from sessionstores.session.naming import validate_namespace
from sessionstores.session.record import SessionRecord
from sessionstores.session.store import (
    Clock,
    DEFAULT_MAX_CREATE_ATTEMPTS,
    ExpiredDeletion,
    SessionStore,
)

logger = logging.getLogger(__name__)


def _bson_expiry(expiry_date: datetime) -> datetime:
    """
    Round an expiry up to the millisecond precision BSON dates keep.

    The stored value is never earlier than the record's real expiry, so
    filters on it cannot hide or sweep a live record. load() rechecks the
    exact expiry from the decoded record.
    """
    remainder = expiry_date.microsecond % 1000
    if remainder:
        expiry_date += timedelta(microseconds=1000 - remainder)
    return expiry_date


class MongoDBSessionStore(SessionStore, ExpiredDeletion):
    """
    Session store for MongoDB collections.

    create() relies on the unique _id index: DuplicateKeyError is the
    collision signal. save() is replace_one with upsert.

    Attributes:
        mongodb_url: Connection string, used by connect()
        database_name: Database holding the sessions collection
        collection_name: Sessions collection, validated as a safe name
    """

    backend_name = "mongodb"
    backend_exceptions = (PyMongoError,)

    def __init__(
        self,
        mongodb_url: Optional[str] = None,
        client: Optional[Any] = None,
        database_name: str = "sessions",
        collection_name: str = "sessions",
        clock: Optional[Clock] = None,
        max_create_attempts: int = DEFAULT_MAX_CREATE_ATTEMPTS,
        id_generator=None,
    ):
        """
        Initialize the MongoDB session store.

        Args:
            mongodb_url: Connection string. Required unless a client is given.
            client: An existing AsyncMongoClient. Not closed by the store.
            database_name: Database name, validated as a safe name.
            collection_name: Collection name, validated as a safe name.
            clock: Source of "now" for expiry filtering and sweeps.
            max_create_attempts: Identifier attempts before create() gives up.
            id_generator: Produces fresh identifiers.
        """
        super().__init__(
            clock=clock,
            max_create_attempts=max_create_attempts,
            id_generator=id_generator,
        )
        if mongodb_url is None and client is None:
            raise ValueError("Either mongodb_url or client must be provided")
        self.mongodb_url = mongodb_url
        self.database_name = validate_namespace(database_name)
        self.collection_name = validate_namespace(collection_name)
        self.client = client
        self._owns_client = False

    async def connect(self) -> None:
        """Create the client from mongodb_url unless one is already set."""
        if self.client is not None:
            return
        from pymongo import AsyncMongoClient
        self.client = AsyncMongoClient(self.mongodb_url)
        self._owns_client = True

    async def close(self) -> None:
        if self.client is not None and self._owns_client:
            await self.client.close()
            self.client = None
            self._owns_client = False

    @property
    def collection(self) -> Any:
        if self.client is None:
            raise NotConnectedError(
                "MongoDB client not connected. Call connect() first.",
                details={"backend": self.backend_name},
            )
        return self.client[self.database_name][self.collection_name]

    def _document(self, record: SessionRecord) -> dict[str, Any]:
        return {
            "_id": record.id,
            "data": Binary(encode_record(record)),
            "expiry_date": _bson_expiry(record.expiry_date),
        }

    async def ensure_schema(self) -> None:
        """Create the TTL index on expiry_date if it does not exist."""
        collection = self.collection
        with self._backend_call("ensure_schema"):
            await collection.create_index(
                "expiry_date",
                name=f"{self.collection_name}_expiry_date_ttl",
                expireAfterSeconds=0,
            )
        logger.info("Session collection ready", extra={
            "extra_data": {
                "database": self.database_name,
                "collection": self.collection_name,
            }
        })

    async def _try_create(self, record: SessionRecord) -> bool:
        collection = self.collection
        document = self._document(record)
        with self._backend_call("create", record.id):
            try:
                await collection.insert_one(document)
            except DuplicateKeyError:
                return False
        return True

    async def save(self, record: SessionRecord) -> None:
        session_id = self._require_id(record)
        collection = self.collection
        document = self._document(record)
        with self._backend_call("save", session_id):
            await collection.replace_one({"_id": session_id}, document, upsert=True)

    async def load(self, session_id: str) -> Optional[SessionRecord]:
        collection = self.collection
        with self._backend_call("load", session_id):
            document = await collection.find_one(
                {"_id": session_id, "expiry_date": {"$gt": self.now()}},
                projection={"data": True},
            )

        if document is None:
            return None
        record = decode_record(bytes(document["data"]))
        return record if self._is_live(record) else None

    async def delete(self, session_id: str) -> None:
        collection = self.collection
        with self._backend_call("delete", session_id):
            await collection.delete_one({"_id": session_id})

    async def delete_expired(self) -> None:
        collection = self.collection
        with self._backend_call("delete_expired"):
            result = await collection.delete_many({"expiry_date": {"$lte": self.now()}})
        logger.debug("Expired MongoDB sessions deleted", extra={
            "extra_data": {
                "collection": self.collection_name,
                "count": getattr(result, "deleted_count", None),
            }
        })

    async def health_check(self) -> bool:
        if self.client is None:
            return False
        try:
            await self.client.admin.command("ping")
            return True
        except Exception:
            return False

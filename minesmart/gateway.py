"""
Persistence gateway: the document-store contract the core depends on.

Every component takes a gateway as an argument instead of reaching for a
global client, so tests and the offline demo can run on InMemoryGateway
while production uses MongoGateway.

Documents travel as plain dicts. The store's own identifier is always
exposed under the "id" key and never written back as a field.
"""

import copy
import logging
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Callable

import pymongo
from bson import ObjectId
from bson.errors import InvalidId
from pymongo.errors import PyMongoError

from .config import DATABASE_NAME, DATABASE_URL

logger = logging.getLogger(__name__)

Where = tuple[str, Any]
OrderBy = tuple[str, str]


class GatewayError(Exception):
    """Raised when the document store rejects or fails an operation."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PersistenceGateway(ABC):
    """Collection-scoped create / read / update over a document store."""

    @abstractmethod
    def query(
        self,
        collection: str,
        where: Where | None = None,
        order_by: OrderBy | None = None,
    ) -> list[dict]:
        """Return documents matching an optional equality filter.

        Parameters
        ----------
        collection : Collection name, e.g. "plant_runs".
        where : (field, value) equality predicate, or None for all documents.
        order_by : (field, "asc" | "desc"), or None for store order.
        """

    @abstractmethod
    def get(self, collection: str, document_id: str) -> dict | None:
        """Return one document by id, or None if it does not exist."""

    @abstractmethod
    def insert(self, collection: str, fields: dict) -> str:
        """Insert a document, stamping created_at / updated_at. Returns its id."""

    @abstractmethod
    def update(self, collection: str, document_id: str, fields: dict) -> None:
        """Merge fields into an existing document, stamping updated_at."""

    @abstractmethod
    def increment(self, collection: str, document_id: str, field: str, amount: float) -> None:
        """Atomically add amount (negative to subtract) to a numeric field.

        A missing field counts as 0. Raises GatewayError if the document
        does not exist.
        """


# ---------------------------------------------------------------------------
# MongoDB
# ---------------------------------------------------------------------------

def _direction(order: str) -> int:
    return pymongo.DESCENDING if order.lower() == "desc" else pymongo.ASCENDING


def _object_id(document_id: str) -> ObjectId | None:
    try:
        return ObjectId(document_id)
    except (InvalidId, TypeError):
        return None


def _from_mongo(doc: dict) -> dict:
    result = {k: v for k, v in doc.items() if k != "_id"}
    result["id"] = str(doc["_id"])
    return result


class MongoGateway(PersistenceGateway):
    """Gateway backed by a pymongo database handle."""

    def __init__(self, database):
        self._db = database

    @classmethod
    def from_env(cls, url: str | None = None, name: str | None = None) -> "MongoGateway":
        """Connect using DATABASE_URL / DATABASE_NAME unless overridden."""
        url = url or DATABASE_URL
        if not url:
            raise GatewayError("DATABASE_URL is not set")
        client = pymongo.MongoClient(url)
        logger.info("Connected to MongoDB database '%s'", name or DATABASE_NAME)
        return cls(client[name or DATABASE_NAME])

    def query(self, collection, where=None, order_by=None):
        criteria = {where[0]: where[1]} if where else {}
        try:
            cursor = self._db[collection].find(criteria)
            if order_by:
                cursor = cursor.sort(order_by[0], _direction(order_by[1]))
            return [_from_mongo(doc) for doc in cursor]
        except PyMongoError as exc:
            raise GatewayError(f"query on '{collection}' failed: {exc}") from exc

    def get(self, collection, document_id):
        oid = _object_id(document_id)
        if oid is None:
            return None
        try:
            doc = self._db[collection].find_one({"_id": oid})
        except PyMongoError as exc:
            raise GatewayError(f"read from '{collection}' failed: {exc}") from exc
        return _from_mongo(doc) if doc else None

    def insert(self, collection, fields):
        now = utcnow()
        payload = {k: v for k, v in fields.items() if k != "id"}
        payload["created_at"] = now
        payload["updated_at"] = now
        try:
            result = self._db[collection].insert_one(payload)
        except PyMongoError as exc:
            raise GatewayError(f"insert into '{collection}' failed: {exc}") from exc
        return str(result.inserted_id)

    def update(self, collection, document_id, fields):
        oid = _object_id(document_id)
        if oid is None:
            raise GatewayError(f"invalid document id '{document_id}'")
        payload = {k: v for k, v in fields.items() if k != "id"}
        payload["updated_at"] = utcnow()
        try:
            result = self._db[collection].update_one({"_id": oid}, {"$set": payload})
        except PyMongoError as exc:
            raise GatewayError(f"update of '{collection}/{document_id}' failed: {exc}") from exc
        if result.matched_count == 0:
            raise GatewayError(f"document '{collection}/{document_id}' not found")

    def increment(self, collection, document_id, field, amount):
        oid = _object_id(document_id)
        if oid is None:
            raise GatewayError(f"invalid document id '{document_id}'")
        try:
            result = self._db[collection].update_one(
                {"_id": oid},
                {"$inc": {field: amount}, "$set": {"updated_at": utcnow()}},
            )
        except PyMongoError as exc:
            raise GatewayError(f"increment of '{collection}/{document_id}' failed: {exc}") from exc
        if result.matched_count == 0:
            raise GatewayError(f"document '{collection}/{document_id}' not found")


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------

def _sort_value(value: Any) -> str:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
    return str(value)


class InMemoryGateway(PersistenceGateway):
    """Dict-backed gateway for tests and the offline demo.

    Returned documents are deep copies, so callers cannot mutate stored
    state behind the gateway's back.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self._collections: dict[str, dict[str, dict]] = defaultdict(dict)
        self._clock = clock or utcnow

    def load(self, collection: str, documents: list[dict]) -> list[str]:
        """Store documents verbatim (no timestamps added). Returns their ids."""
        ids = []
        for doc in documents:
            doc = copy.deepcopy(doc)
            doc_id = str(doc.pop("id", None) or uuid.uuid4().hex)
            self._collections[collection][doc_id] = doc
            ids.append(doc_id)
        return ids

    def count(self, collection: str) -> int:
        return len(self._collections[collection])

    def query(self, collection, where=None, order_by=None):
        docs = [
            {**copy.deepcopy(doc), "id": doc_id}
            for doc_id, doc in self._collections[collection].items()
            if where is None or doc.get(where[0]) == where[1]
        ]
        if order_by:
            field, order = order_by
            present = [d for d in docs if d.get(field) is not None]
            missing = [d for d in docs if d.get(field) is None]
            present.sort(key=lambda d: _sort_value(d[field]), reverse=order.lower() == "desc")
            docs = present + missing
        return docs

    def get(self, collection, document_id):
        doc = self._collections[collection].get(document_id)
        if doc is None:
            return None
        return {**copy.deepcopy(doc), "id": document_id}

    def insert(self, collection, fields):
        now = self._clock()
        doc = {k: copy.deepcopy(v) for k, v in fields.items() if k != "id"}
        doc["created_at"] = now
        doc["updated_at"] = now
        doc_id = uuid.uuid4().hex
        self._collections[collection][doc_id] = doc
        return doc_id

    def update(self, collection, document_id, fields):
        doc = self._collections[collection].get(document_id)
        if doc is None:
            raise GatewayError(f"document '{collection}/{document_id}' not found")
        doc.update({k: copy.deepcopy(v) for k, v in fields.items() if k != "id"})
        doc["updated_at"] = self._clock()

    def increment(self, collection, document_id, field, amount):
        doc = self._collections[collection].get(document_id)
        if doc is None:
            raise GatewayError(f"document '{collection}/{document_id}' not found")
        doc[field] = (doc.get(field) or 0) + amount
        doc["updated_at"] = self._clock()

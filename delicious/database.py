from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, GEOSPHERE, TEXT, MongoClient
from pymongo.database import Database as MongoDatabase


logger = logging.getLogger(__name__)


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if value in (None, ""):
        return None
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def jsonable(value: Any) -> Any:
    """Convert ObjectIds and datetimes nested in a document into JSON-friendly values."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [jsonable(item) for item in value]
    return value


class MongoDocument:
    def __init__(self, data: Optional[Dict[str, Any]] = None) -> None:
        self._data = data or {}

    def __getattr__(self, item: str) -> Any:
        if item.startswith("__") or item == "_data":
            raise AttributeError(item)
        if item == "id":
            _id = self._data.get("_id")
            return str(_id) if _id is not None else None
        value = self._data.get(item)
        if isinstance(value, ObjectId):
            return str(value)
        return value

    @property
    def mongo_id(self) -> Optional[ObjectId]:
        return self._data.get("_id")

    def to_dict(self) -> Dict[str, Any]:
        payload = dict(self._data)
        if "_id" in payload:
            payload["id"] = payload.pop("_id")
        return jsonable(payload)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MongoDocument):
            return NotImplemented
        return type(self) is type(other) and self.mongo_id is not None and self.mongo_id == other.mongo_id

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.mongo_id))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id}>"


class Database:
    """Owns the pooled client and the handles on the three collections."""

    def __init__(self, client: MongoClient, db_name: str) -> None:
        self.client = client
        self.db: MongoDatabase = client[db_name]

    @classmethod
    def connect(cls, uri: str, db_name: str) -> "Database":
        logger.info("Connecting to MongoDB database %s", db_name)
        return cls(MongoClient(uri), db_name)

    @property
    def stores(self):
        return self.db["stores"]

    @property
    def reviews(self):
        return self.db["reviews"]

    @property
    def users(self):
        return self.db["users"]

    def ensure_indexes(self) -> None:
        self.stores.create_index("slug", unique=True)
        self.stores.create_index([("name", TEXT), ("description", TEXT)], name="store_text")
        self.stores.create_index([("location", GEOSPHERE)])
        self.stores.create_index([("created", DESCENDING), ("_id", DESCENDING)])
        self.stores.create_index("tags")
        self.reviews.create_index([("store", ASCENDING), ("created", DESCENDING)])
        self.users.create_index("email", unique=True)
        self.users.create_index("reset_password_token", sparse=True)

    def close(self) -> None:
        self.client.close()

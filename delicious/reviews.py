from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from pymongo import DESCENDING

from .database import Database, MongoDocument, to_object_id
from .errors import NotFound, ValidationError
from .users import User, UserRepository


logger = logging.getLogger(__name__)


class Review(MongoDocument):
    def __init__(self, data: Optional[Dict[str, Any]] = None, reviewer: Optional[User] = None) -> None:
        super().__init__(data)
        self.reviewer = reviewer

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        if self.reviewer is not None:
            payload["author"] = self.reviewer.public_dict()
        return payload


def parse_rating(raw: Any) -> int:
    if isinstance(raw, bool):
        raise ValidationError({"rating": "Invalid rating value"})
    if isinstance(raw, float):
        if not raw.is_integer():
            raise ValidationError({"rating": "Rating must be a whole number"})
        raw = int(raw)
    try:
        rating = int(raw)
    except (TypeError, ValueError):
        raise ValidationError({"rating": "Invalid rating value"})
    if rating < 1 or rating > 5:
        raise ValidationError({"rating": "Rating must be between 1 and 5"})
    return rating


class ReviewRepository:
    def __init__(self, database: Database, users: UserRepository) -> None:
        self.collection = database.reviews
        self.stores = database.stores
        self.users = users

    def add_review(self, store_id: Any, author_id: Any, text: str, rating: Any) -> Review:
        # Any signed-in user may review any store, their own included.
        store_oid = to_object_id(store_id)
        if not store_oid or not self.stores.count_documents({"_id": store_oid}, limit=1):
            raise NotFound("No such store")
        author_oid = to_object_id(author_id)
        if not author_oid:
            raise ValidationError({"author": "You must supply an author!"})
        text = (text or "").strip()
        if not text:
            raise ValidationError({"text": "Your review must have text!"})
        doc = {
            "store": store_oid,
            "author": author_oid,
            "text": text,
            "rating": parse_rating(rating),
            "created": datetime.utcnow(),
        }
        doc["_id"] = self.collection.insert_one(doc).inserted_id
        logger.info("Review %s added to store %s", doc["_id"], store_oid)
        return Review(doc)

    def for_stores(self, store_ids: Iterable[ObjectId]) -> Dict[ObjectId, List[Review]]:
        """Reviews grouped by store, newest first, with their authors attached."""
        ids = [oid for oid in store_ids if oid]
        grouped: Dict[ObjectId, List[Review]] = {oid: [] for oid in ids}
        if not ids:
            return grouped
        docs = list(self.collection.find({"store": {"$in": ids}}).sort("created", DESCENDING))
        reviewers = self.users.by_ids(doc.get("author") for doc in docs)
        for doc in docs:
            grouped.setdefault(doc["store"], []).append(Review(doc, reviewer=reviewers.get(doc.get("author"))))
        return grouped

    def delete_for_store(self, store_id: Any) -> int:
        return self.collection.delete_many({"store": to_object_id(store_id)}).deleted_count

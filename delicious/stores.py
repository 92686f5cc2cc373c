from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional, Tuple

from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError
from slugify import slugify

from .database import Database, MongoDocument, to_object_id
from .errors import ConflictError, NotFound, PermissionDenied, ValidationError
from .reviews import Review, ReviewRepository
from .users import User, UserRepository


logger = logging.getLogger(__name__)

SLUG_RETRIES = 3
MAP_FIELDS = {"description": 1, "location": 1, "name": 1, "photo": 1, "slug": 1}


class Store(MongoDocument):
    def __init__(
        self,
        data: Optional[Dict[str, Any]] = None,
        owner: Optional[User] = None,
        reviews: Optional[List[Review]] = None,
    ) -> None:
        super().__init__(data)
        self.owner = owner
        self.reviews = reviews

    @property
    def average_rating(self) -> Optional[float]:
        return self._data.get("averageRating")

    @property
    def coordinates(self) -> Optional[List[float]]:
        return (self._data.get("location") or {}).get("coordinates")

    def is_owned_by(self, user_id: Any) -> bool:
        return self._data.get("author") is not None and self._data.get("author") == to_object_id(user_id)

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        if self.owner is not None:
            payload["author"] = self.owner.public_dict()
        if self.reviews is not None:
            payload["reviews"] = [review.to_dict() for review in self.reviews]
        return payload


class TagCount(NamedTuple):
    tag: str
    count: int


def base_slug(name: str) -> str:
    return slugify(name or "") or "store"


def _text(raw: Any) -> Optional[str]:
    """Stripped text, "" for a missing value, None when the value is not a string."""
    if raw is None:
        return ""
    if not isinstance(raw, str):
        return None
    return raw.strip()


def _parse_tags(raw: Any) -> List[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, (list, tuple)):
        raise TypeError("tags must be a list or a string")
    return [str(tag).strip() for tag in raw if str(tag).strip()]


def _parse_coordinates(raw: Any) -> Tuple[float, float]:
    if not isinstance(raw, (list, tuple)) or len(raw) != 2:
        raise ValueError("coordinates must be a [longitude, latitude] pair")
    lng, lat = (float(value) for value in raw)
    if not -180 <= lng <= 180 or not -90 <= lat <= 90:
        raise ValueError("coordinates out of range")
    return lng, lat


def clean_store(draft: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a store draft and normalise it into the stored document shape."""
    errors: Dict[str, str] = {}
    name = _text(draft.get("name"))
    if not name:
        errors["name"] = "Please enter a store name!"
    description = _text(draft.get("description"))
    if description is None:
        errors["description"] = "The description must be text"
    tags: List[str] = []
    try:
        tags = _parse_tags(draft.get("tags"))
    except TypeError:
        errors["tags"] = "Tags must be a list or a comma separated string"

    location = draft.get("location") or {}
    if not isinstance(location, dict):
        errors["location"] = "The location must be an object with an address and coordinates"
        location = {}
    address = _text(location.get("address"))
    if not address:
        errors["location.address"] = "You must supply an address!"
    coordinates: Optional[Tuple[float, float]] = None
    try:
        coordinates = _parse_coordinates(location.get("coordinates"))
    except (TypeError, ValueError):
        errors["location.coordinates"] = "You must supply coordinates!"

    author = to_object_id(draft.get("author"))
    if not author:
        errors["author"] = "You must supply an author"

    if errors:
        raise ValidationError(errors)

    doc: Dict[str, Any] = {
        "name": name,
        "description": description,
        "location": {"type": "Point", "coordinates": list(coordinates), "address": address},
        "tags": tags,
        "author": author,
    }
    if draft.get("photo"):
        doc["photo"] = draft["photo"]
    return doc


class StoreRepository:
    def __init__(self, database: Database, reviews: ReviewRepository, users: UserRepository) -> None:
        self.collection = database.stores
        self.reviews_collection_name = database.reviews.name
        self.reviews = reviews
        self.users = users

    # -- slugs ---------------------------------------------------------------

    def _taken_slugs(self, base: str, exclude_id: Optional[ObjectId] = None) -> List[str]:
        query: Dict[str, Any] = {"slug": {"$regex": f"^({re.escape(base)})(-[0-9]+)?$", "$options": "i"}}
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}
        return [doc["slug"].lower() for doc in self.collection.find(query, {"slug": 1})]

    def next_slug(self, name: str, exclude_id: Optional[ObjectId] = None) -> str:
        """``base`` if free, else ``base-N`` where N is one more than the stores already using it."""
        base = base_slug(name)
        taken = self._taken_slugs(base, exclude_id)
        if not taken:
            return base
        candidate = f"{base}-{len(taken) + 1}"
        if candidate in taken:
            # A store in the sequence was deleted; skip past the highest suffix.
            suffixes = [int(slug[len(base) + 1:]) for slug in taken if slug != base]
            candidate = f"{base}-{max(suffixes, default=1) + 1}"
        return candidate

    def _with_unique_slug(
        self, name: str, write: Callable[[str], Store], exclude_id: Optional[ObjectId] = None
    ) -> Store:
        for attempt in range(1, SLUG_RETRIES + 1):
            slug = self.next_slug(name, exclude_id)
            try:
                return write(slug)
            except DuplicateKeyError:
                logger.warning("Slug %r was taken concurrently (attempt %d/%d)", slug, attempt, SLUG_RETRIES)
        raise ConflictError(f"Could not assign a unique slug for {name!r}")

    # -- writes --------------------------------------------------------------

    def create(self, draft: Dict[str, Any], created: Optional[datetime] = None) -> Store:
        doc = clean_store(draft)
        doc["created"] = created or datetime.utcnow()

        def insert(slug: str) -> Store:
            record = dict(doc, slug=slug)
            record["_id"] = self.collection.insert_one(record).inserted_id
            return Store(record)

        store = self._with_unique_slug(doc["name"], insert)
        logger.info("Created store %s (%s)", store.id, store.slug)
        return store

    def update(self, store_id: Any, changes: Dict[str, Any], user_id: Any) -> Store:
        current = self.get(store_id)
        if not current.is_owned_by(user_id):
            raise PermissionDenied("You must own a store in order to edit it!")
        existing = current._data
        merged = {key: value for key, value in existing.items() if key not in ("_id", "slug", "created")}
        merged.update({key: value for key, value in changes.items() if key not in ("author", "created", "slug")})
        location_changes = changes.get("location") or {}
        if isinstance(location_changes, dict):
            merged["location"] = dict(existing.get("location") or {}, **location_changes)
        merged["author"] = existing["author"]
        doc = clean_store(merged)
        doc.pop("author")

        def write(slug: str) -> Store:
            updated = self.collection.find_one_and_update(
                {"_id": current.mongo_id},
                {"$set": dict(doc, slug=slug)},
                return_document=ReturnDocument.AFTER,
            )
            if not updated:
                raise NotFound("No such store")
            return Store(updated)

        if doc["name"] == existing.get("name"):
            return write(existing["slug"])
        return self._with_unique_slug(doc["name"], write, exclude_id=current.mongo_id)

    # -- reads ---------------------------------------------------------------

    def get(self, store_id: Any) -> Store:
        oid = to_object_id(store_id)
        doc = self.collection.find_one({"_id": oid}) if oid else None
        if not doc:
            raise NotFound("No such store")
        return Store(doc)

    def find_by_slug(self, slug: str) -> Store:
        doc = self.collection.find_one({"slug": slug})
        if not doc:
            raise NotFound(f"No store called {slug!r}")
        reviews = self.reviews.for_stores([doc["_id"]])
        return Store(doc, owner=self.users.get(doc.get("author")), reviews=reviews.get(doc["_id"], []))

    def _with_reviews(self, docs: Iterable[Dict[str, Any]]) -> List[Store]:
        docs = list(docs)
        reviews = self.reviews.for_stores(doc["_id"] for doc in docs)
        return [Store(doc, reviews=reviews.get(doc["_id"], [])) for doc in docs]

    def list_page(self, page: int, page_size: int = 4) -> Tuple[List[Store], int]:
        count = self.collection.count_documents({})
        if page < 1:
            return [], count
        cursor = (
            self.collection.find()
            .sort([("created", DESCENDING), ("_id", DESCENDING)])
            .skip((page - 1) * page_size)
            .limit(page_size)
        )
        return self._with_reviews(cursor), count

    def list_by_tag(self, tag: Optional[str] = None) -> List[Store]:
        query = {"tags": tag} if tag else {"tags": {"$exists": True}}
        return self._with_reviews(self.collection.find(query).sort("created", DESCENDING))

    def find_by_ids(self, store_ids: Iterable[Any]) -> List[Store]:
        ids = [oid for oid in (to_object_id(value) for value in store_ids) if oid]
        if not ids:
            return []
        return self._with_reviews(self.collection.find({"_id": {"$in": ids}}).sort("created", DESCENDING))

    def geo_near(self, lng: float, lat: float, max_distance: float = 10000, limit: int = 10) -> List[Store]:
        query = {
            "location": {
                "$near": {
                    "$geometry": {"type": "Point", "coordinates": [lng, lat]},
                    "$maxDistance": max_distance,
                }
            }
        }
        return [Store(doc) for doc in self.collection.find(query, MAP_FIELDS).limit(limit)]

    def text_search(self, query: str, limit: int = 10) -> List[Store]:
        query = (query or "").strip()
        if not query:
            return []
        cursor = (
            self.collection.find({"$text": {"$search": query}}, {"score": {"$meta": "textScore"}})
            .sort([("score", {"$meta": "textScore"})])
            .limit(limit)
        )
        return [Store(doc) for doc in cursor]

    def tag_counts(self) -> List[TagCount]:
        pipeline = [
            {"$unwind": "$tags"},
            {"$group": {"_id": "$tags", "count": {"$sum": 1}}},
            {"$sort": {"count": -1, "_id": 1}},
        ]
        return [TagCount(row["_id"], row["count"]) for row in self.collection.aggregate(pipeline)]

    def top_rated(self, limit: int = 10) -> List[Store]:
        pipeline = [
            {
                "$lookup": {
                    "from": self.reviews_collection_name,
                    "localField": "_id",
                    "foreignField": "store",
                    "as": "reviews",
                }
            },
            # Single reviews are too noisy to rank on.
            {"$match": {"reviews.1": {"$exists": True}}},
            {
                "$project": {
                    "name": 1,
                    "photo": 1,
                    "slug": 1,
                    "reviews": 1,
                    "averageRating": {"$avg": "$reviews.rating"},
                }
            },
            {"$sort": {"averageRating": -1, "_id": 1}},
            {"$limit": limit},
        ]
        return [Store(doc) for doc in self.collection.aggregate(pipeline)]

    def count_by_author(self, author_id: Any) -> int:
        return self.collection.count_documents({"author": to_object_id(author_id)})

from __future__ import annotations

import hashlib
import logging
import re
from datetime import datetime, timedelta
from secrets import token_hex
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from flask_login import UserMixin
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError
from werkzeug.security import check_password_hash, generate_password_hash

from .database import Database, MongoDocument, to_object_id
from .errors import NotFound, ValidationError


logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
RESET_TOKEN_LIFETIME = timedelta(hours=1)


class User(UserMixin, MongoDocument):
    def get_id(self) -> Optional[str]:
        return str(self._data.get("_id")) if self._data.get("_id") else None

    @staticmethod
    def normalize_email(email: str) -> str:
        return (email or "").strip().lower()

    @property
    def hearts(self) -> List[str]:
        return [str(store_id) for store_id in self._data.get("hearts") or []]

    def has_hearted(self, store_id: Any) -> bool:
        return str(store_id) in self.hearts

    @property
    def gravatar(self) -> str:
        digest = hashlib.md5(self.normalize_email(self.email).encode("utf-8")).hexdigest()
        return f"https://gravatar.com/avatar/{digest}?s=200"

    def public_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "gravatar": self.gravatar}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "gravatar": self.gravatar,
            "hearts": self.hearts,
        }


class UserRepository:
    def __init__(self, database: Database) -> None:
        self.collection = database.users

    def get(self, user_id: Any) -> Optional[User]:
        oid = to_object_id(user_id)
        if not oid:
            return None
        doc = self.collection.find_one({"_id": oid})
        return User(doc) if doc else None

    def get_by_email(self, email: str) -> Optional[User]:
        normalized = User.normalize_email(email)
        if not normalized:
            return None
        doc = self.collection.find_one({"email": normalized})
        return User(doc) if doc else None

    def by_ids(self, user_ids: Iterable[ObjectId]) -> Dict[ObjectId, User]:
        ids = list({oid for oid in user_ids if oid})
        if not ids:
            return {}
        return {doc["_id"]: User(doc) for doc in self.collection.find({"_id": {"$in": ids}})}

    def register(self, email: str, name: str, password: str, password_confirm: Optional[str] = None) -> User:
        name = (name or "").strip()
        normalized = User.normalize_email(email)
        errors: Dict[str, str] = {}
        if not name:
            errors["name"] = "You must supply a name"
        if not EMAIL_RE.match(normalized):
            errors["email"] = "That email is not valid"
        if not password:
            errors["password"] = "Password cannot be blank"
        elif password_confirm is not None and password_confirm != password:
            errors["password-confirm"] = "Oops! Your passwords do not match"
        if errors:
            raise ValidationError(errors)

        doc = {
            "email": normalized,
            "name": name,
            "password_hash": generate_password_hash(password),
            "hearts": [],
            "created": datetime.utcnow(),
        }
        try:
            doc["_id"] = self.collection.insert_one(doc).inserted_id
        except DuplicateKeyError:
            raise ValidationError({"email": "An account with this email already exists"})
        logger.info("Registered user %s", doc["_id"])
        return User(doc)

    def authenticate(self, email: str, password: str) -> Optional[User]:
        user = self.get_by_email(email)
        if user and check_password_hash(user._data.get("password_hash", ""), password or ""):
            return user
        return None

    def update_account(self, user_id: Any, name: str, email: str) -> User:
        name = (name or "").strip()
        normalized = User.normalize_email(email)
        errors: Dict[str, str] = {}
        if not name:
            errors["name"] = "You must supply a name"
        if not EMAIL_RE.match(normalized):
            errors["email"] = "That email is not valid"
        if errors:
            raise ValidationError(errors)
        try:
            doc = self.collection.find_one_and_update(
                {"_id": to_object_id(user_id)},
                {"$set": {"name": name, "email": normalized}},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            raise ValidationError({"email": "An account with this email already exists"})
        if not doc:
            raise NotFound("No such user")
        return User(doc)

    def toggle_heart(self, user_id: Any, store_id: Any) -> List[str]:
        """Add the store to the user's hearts, or remove it if it is already there."""
        user_oid = to_object_id(user_id)
        store_oid = to_object_id(store_id)
        if not user_oid:
            raise NotFound("No such user")
        if not store_oid:
            raise NotFound("No such store")
        current = self.collection.find_one({"_id": user_oid}, {"hearts": 1})
        if not current:
            raise NotFound("No such user")
        operator = "$pull" if store_oid in (current.get("hearts") or []) else "$addToSet"
        doc = self.collection.find_one_and_update(
            {"_id": user_oid},
            {operator: {"hearts": store_oid}},
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            raise NotFound("No such user")
        logger.debug("User %s %s store %s", user_oid, "unhearted" if operator == "$pull" else "hearted", store_oid)
        return User(doc).hearts

    def create_reset_token(self, email: str) -> Optional[User]:
        """Give the user a one-hour password reset token. Returns None for unknown emails."""
        user = self.get_by_email(email)
        if not user:
            return None
        doc = self.collection.find_one_and_update(
            {"_id": user.mongo_id},
            {
                "$set": {
                    "reset_password_token": token_hex(20),
                    "reset_password_expires": datetime.utcnow() + RESET_TOKEN_LIFETIME,
                }
            },
            return_document=ReturnDocument.AFTER,
        )
        logger.info("Password reset requested for user %s", user.mongo_id)
        return User(doc)

    def get_by_reset_token(self, token: str) -> Optional[User]:
        if not token:
            return None
        doc = self.collection.find_one(
            {
                "reset_password_token": token,
                "reset_password_expires": {"$gt": datetime.utcnow()},
            }
        )
        return User(doc) if doc else None

    def reset_password(self, token: str, password: str, password_confirm: Optional[str] = None) -> User:
        user = self.get_by_reset_token(token)
        if not user:
            raise NotFound("Password reset link is invalid or has expired")
        if not password:
            raise ValidationError({"password": "Password cannot be blank"})
        if password_confirm is not None and password_confirm != password:
            raise ValidationError({"password-confirm": "Passwords do not match!"})
        doc = self.collection.find_one_and_update(
            {"_id": user.mongo_id},
            {
                "$set": {"password_hash": generate_password_hash(password)},
                "$unset": {"reset_password_token": "", "reset_password_expires": ""},
            },
            return_document=ReturnDocument.AFTER,
        )
        return User(doc)

    def delete(self, user_id: Any) -> bool:
        return self.collection.delete_one({"_id": to_object_id(user_id)}).deleted_count == 1

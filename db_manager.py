#!/usr/bin/env python3
"""Database management helpers for the Delicious store directory (MongoDB).

Usage: python db_manager.py <command>

Commands:
  ensure_indexes - Create the slug, text, geo and email indexes
  list_stores    - List all stores with their slugs and review counts
  list_users     - List all users in the database
  delete_user    - Delete a user by email, with their stores and reviews
  reset_db       - Delete all stores, reviews and users
"""

from __future__ import annotations

import sys
from datetime import datetime

from pymongo import ASCENDING, DESCENDING

from delicious import Repositories


def ensure_indexes(repos: Repositories) -> None:
    """Create every index the app relies on."""
    repos.database.ensure_indexes()
    print("Indexes are in place.")


def list_stores(repos: Repositories) -> None:
    """List stores, newest first."""
    db = repos.database
    stores = list(db.stores.find().sort("created", DESCENDING))
    if not stores:
        print("No stores found in MongoDB.")
        return
    print(f"\n{'ID':<25} {'Slug':<30} {'Reviews':<8} {'Created'}")
    print("-" * 80)
    for doc in stores:
        created = doc.get("created")
        created_str = created.strftime("%Y-%m-%d %H:%M") if isinstance(created, datetime) else "n/a"
        reviews = db.reviews.count_documents({"store": doc["_id"]})
        print(f"{str(doc.get('_id')):<25} {doc.get('slug', '-'):<30} {reviews:<8} {created_str}")
    print(f"\nTotal stores: {len(stores)}")


def list_users(repos: Repositories) -> None:
    """List all users with their key attributes."""
    users = list(repos.database.users.find().sort("created", ASCENDING))
    if not users:
        print("No users found in MongoDB.")
        return
    print(f"\n{'ID':<25} {'Email':<30} {'Name':<20} {'Stores':<7} {'Hearts'}")
    print("-" * 95)
    for doc in users:
        print(
            f"{str(doc.get('_id')):<25} "
            f"{doc.get('email', '-'):<30} "
            f"{doc.get('name', '-'):<20} "
            f"{repos.stores.count_by_author(doc['_id']):<7} "
            f"{len(doc.get('hearts') or [])}"
        )
    print(f"\nTotal users: {len(users)}")


def delete_user(repos: Repositories) -> None:
    """Delete a user by email."""
    email = input("Enter email of user to delete: ").strip()
    if not email:
        print("Email is required.")
        return
    user = repos.users.get_by_email(email)
    if not user:
        print(f"Error: No user found with email {email!r}.")
        return
    confirm = input(f"Are you sure you want to delete {user.name} ({user.email})? [y/N]: ")
    if confirm.lower() != "y":
        print("Deletion cancelled.")
        return
    db = repos.database
    store_ids = [doc["_id"] for doc in db.stores.find({"author": user.mongo_id}, {"_id": 1})]
    for store_id in store_ids:
        repos.reviews.delete_for_store(store_id)
    db.stores.delete_many({"author": user.mongo_id})
    db.reviews.delete_many({"author": user.mongo_id})
    if store_ids:
        db.users.update_many({}, {"$pull": {"hearts": {"$in": store_ids}}})
    repos.users.delete(user.mongo_id)
    print("User and related data deleted.")


def reset_db(repos: Repositories) -> None:
    """Reset all collections (drops stores, reviews and users)."""
    confirm = input("This will DELETE all stores, reviews and users. Continue? [y/N]: ")
    if confirm.lower() != "y":
        print("Reset cancelled.")
        return
    db = repos.database
    db.stores.delete_many({})
    db.reviews.delete_many({})
    db.users.delete_many({})
    db.ensure_indexes()
    print("Database reset.")


def show_help(repos: Repositories = None) -> None:
    print(__doc__)


COMMANDS = {
    "ensure_indexes": ensure_indexes,
    "list_stores": list_stores,
    "list_users": list_users,
    "delete_user": delete_user,
    "reset_db": reset_db,
    "help": show_help,
}


def main(argv=None) -> None:
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        show_help()
        return
    command = argv[0].lower()
    handler = COMMANDS.get(command)
    if not handler:
        print(f"Unknown command: {command}")
        show_help()
        return
    if handler is show_help:
        show_help()
        return

    from delicious import create_app

    app = create_app()
    handler(app.extensions["delicious"])


if __name__ == "__main__":
    main()

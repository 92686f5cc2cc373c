from __future__ import annotations

import atexit
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from flask import Flask, current_app, jsonify
from flask_login import LoginManager
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from .config import Config
from .database import Database
from .errors import DeliciousError
from .queries import StoreQueries
from .reviews import ReviewRepository
from .stores import StoreRepository
from .users import User, UserRepository


login_manager = LoginManager()


@dataclass
class Repositories:
    database: Database
    users: UserRepository
    reviews: ReviewRepository
    stores: StoreRepository
    queries: StoreQueries


def repositories() -> Repositories:
    return current_app.extensions["delicious"]


@login_manager.user_loader
def load_user(user_id: str) -> Optional[User]:
    return repositories().users.get(user_id)


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"error": "Oops! You must be logged in!"}), 401


def create_app(test_config: Optional[Mapping[str, Any]] = None, mongo_client: Optional[MongoClient] = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)
    app.logger.setLevel(app.config["LOG_LEVEL"])

    if mongo_client is None:
        database = Database.connect(app.config["MONGODB_URI"], app.config["MONGODB_DB_NAME"])
        atexit.register(database.close)
    else:
        database = Database(mongo_client, app.config["MONGODB_DB_NAME"])

    try:
        database.ensure_indexes()
    except PyMongoError as exc:  # pragma: no cover - best effort startup
        app.logger.warning("Unable to prepare MongoDB collections: %s", exc)

    users = UserRepository(database)
    reviews = ReviewRepository(database, users)
    stores = StoreRepository(database, reviews, users)
    app.extensions["delicious"] = Repositories(
        database=database,
        users=users,
        reviews=reviews,
        stores=stores,
        queries=StoreQueries(
            stores,
            page_size=app.config["STORES_PER_PAGE"],
            max_distance=app.config["GEO_MAX_DISTANCE"],
        ),
    )

    login_manager.init_app(app)

    @app.errorhandler(DeliciousError)
    def handle_delicious_error(exc: DeliciousError):
        if exc.status_code >= 500:
            app.logger.error("Unhandled application error: %s", exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    from .views import bp

    app.register_blueprint(bp)
    return app

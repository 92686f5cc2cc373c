"""
Shared pytest fixtures: an app wired to an in-memory mongomock database.
"""
from datetime import datetime, timedelta
from itertools import count
from typing import Any, Callable, Dict

import mongomock
import pytest

from delicious import create_app
from delicious.stores import Store


TORONTO = (-79.3832, 43.6532)


def store_draft(name: str = "Pizza Place", author=None, **overrides: Any) -> Dict[str, Any]:
    draft = {
        "name": name,
        "description": overrides.pop("description", f"{name} serves food"),
        "location": {
            "address": overrides.pop("address", "1 King St W, Toronto"),
            "coordinates": list(overrides.pop("coordinates", TORONTO)),
        },
        "tags": overrides.pop("tags", ["Open Late"]),
        "author": author,
    }
    draft.update(overrides)
    return draft


@pytest.fixture
def mongo_client():
    return mongomock.MongoClient()


@pytest.fixture
def app(mongo_client, tmp_path):
    app = create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test-secret",
            "MONGODB_DB_NAME": "delicious_test",
            "UPLOAD_FOLDER": str(tmp_path / "uploads"),
            "MAIL_HOST": "",
            "MAIL_FROM": "Delicious <noreply@example.com>",
        },
        mongo_client=mongo_client,
    )
    return app


@pytest.fixture
def repos(app):
    return app.extensions["delicious"]


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def author(repos):
    return repos.users.register("wes@example.com", "Wes", "hunter22", "hunter22")


@pytest.fixture
def other_user(repos):
    return repos.users.register("stan@example.com", "Stan", "hunter22", "hunter22")


@pytest.fixture
def make_store(repos, author) -> Callable[..., Store]:
    """Create stores one minute apart so listing order is predictable."""
    start = datetime(2024, 1, 1, 12, 0)
    ticks = count()

    def _make(name: str = "Pizza Place", **overrides: Any) -> Store:
        owner = overrides.pop("author", author)
        created = start + timedelta(minutes=next(ticks))
        return repos.stores.create(store_draft(name, author=owner.mongo_id, **overrides), created=created)

    return _make


@pytest.fixture
def logged_in(client, author):
    """Log the author in through the API so the test client carries a session cookie."""
    resp = client.post("/api/login", json={"email": "wes@example.com", "password": "hunter22"})
    assert resp.status_code == 200
    return resp.get_json()["user"]

"""
Users, hearts, reviews and password resets.
"""
import hashlib
from datetime import datetime, timedelta

import pytest
from bson import ObjectId

from delicious.errors import NotFound, ValidationError


@pytest.mark.unit
class TestRegistration:
    def test_register_normalises_email_and_hashes_password(self, repos):
        user = repos.users.register("  Wes@Example.COM ", " Wes ", "hunter22", "hunter22")
        doc = repos.database.users.find_one({"_id": user.mongo_id})
        assert doc["email"] == "wes@example.com"
        assert doc["name"] == "Wes"
        assert doc["password_hash"] != "hunter22"
        assert doc["hearts"] == []

    def test_register_collects_field_errors(self, repos):
        with pytest.raises(ValidationError) as excinfo:
            repos.users.register("not-an-email", "", "", None)
        assert set(excinfo.value.errors) == {"name", "email", "password"}

    def test_password_confirmation_must_match(self, repos):
        with pytest.raises(ValidationError) as excinfo:
            repos.users.register("wes@example.com", "Wes", "hunter22", "hunter23")
        assert "password-confirm" in excinfo.value.errors

    def test_duplicate_email(self, repos, author):
        with pytest.raises(ValidationError) as excinfo:
            repos.users.register("WES@example.com", "Other Wes", "pw", "pw")
        assert excinfo.value.errors == {"email": "An account with this email already exists"}

    def test_authenticate(self, repos, author):
        assert repos.users.authenticate("wes@example.com", "hunter22") == author
        assert repos.users.authenticate("wes@example.com", "wrong") is None
        assert repos.users.authenticate("nobody@example.com", "hunter22") is None

    def test_update_account(self, repos, author):
        user = repos.users.update_account(author.id, "Wesley", "WESLEY@example.com")
        assert (user.name, user.email) == ("Wesley", "wesley@example.com")

    def test_gravatar(self, author):
        digest = hashlib.md5(b"wes@example.com").hexdigest()
        assert author.gravatar == f"https://gravatar.com/avatar/{digest}?s=200"


@pytest.mark.unit
class TestHearts:
    def test_toggle_twice_restores_membership(self, make_store, repos, author):
        store = make_store("Pizza Place")
        assert repos.users.toggle_heart(author.id, store.id) == [store.id]
        assert repos.users.toggle_heart(author.id, store.id) == []

    def test_hearts_are_a_set(self, make_store, repos, author):
        first = make_store("One")
        second = make_store("Two")
        repos.users.toggle_heart(author.id, first.id)
        hearts = repos.users.toggle_heart(author.id, second.id)
        assert sorted(hearts) == sorted([first.id, second.id])
        hearts = repos.users.toggle_heart(author.id, first.id)
        assert hearts == [second.id]
        user = repos.users.get(author.id)
        assert user.has_hearted(second.id)
        assert not user.has_hearted(first.id)

    def test_hearts_are_per_user(self, make_store, repos, author, other_user):
        store = make_store("One")
        repos.users.toggle_heart(author.id, store.id)
        assert repos.users.get(other_user.id).hearts == []

    def test_unknown_user(self, repos):
        with pytest.raises(NotFound):
            repos.users.toggle_heart(ObjectId(), ObjectId())


@pytest.mark.unit
class TestReviews:
    def test_add_review(self, make_store, repos, other_user):
        store = make_store("Pizza Place")
        review = repos.reviews.add_review(store.id, other_user.id, "  Lovely  ", "4")
        doc = repos.database.reviews.find_one({"_id": review.mongo_id})
        assert doc["store"] == store.mongo_id
        assert doc["author"] == other_user.mongo_id
        assert doc["text"] == "Lovely"
        assert doc["rating"] == 4

    def test_owner_may_review_own_store(self, make_store, repos, author):
        store = make_store("Pizza Place")
        review = repos.reviews.add_review(store.id, author.id, "Biased but true", 5)
        assert review.author == author.id

    @pytest.mark.parametrize("rating", [0, 6, "five", None, 4.7, "4.5", True, False])
    def test_rating_must_be_one_to_five(self, make_store, repos, author, rating):
        store = make_store("Pizza Place")
        with pytest.raises(ValidationError) as excinfo:
            repos.reviews.add_review(store.id, author.id, "text", rating)
        assert "rating" in excinfo.value.errors

    def test_whole_float_rating_is_accepted(self, make_store, repos, author):
        store = make_store("Pizza Place")
        assert repos.reviews.add_review(store.id, author.id, "text", 4.0).rating == 4

    def test_text_required(self, make_store, repos, author):
        store = make_store("Pizza Place")
        with pytest.raises(ValidationError):
            repos.reviews.add_review(store.id, author.id, "  ", 3)

    def test_missing_store(self, repos, author):
        with pytest.raises(NotFound):
            repos.reviews.add_review(ObjectId(), author.id, "text", 3)

    def test_for_stores_groups_reviews(self, make_store, repos, author, other_user):
        first = make_store("One")
        second = make_store("Two")
        third = make_store("Three")
        repos.reviews.add_review(first.id, author.id, "a", 3)
        repos.reviews.add_review(first.id, other_user.id, "b", 4)
        repos.reviews.add_review(second.id, other_user.id, "c", 5)
        grouped = repos.reviews.for_stores([first.mongo_id, second.mongo_id, third.mongo_id])
        assert sorted(review.text for review in grouped[first.mongo_id]) == ["a", "b"]
        assert [review.reviewer.name for review in grouped[second.mongo_id]] == ["Stan"]
        assert grouped[third.mongo_id] == []


@pytest.mark.unit
class TestPasswordReset:
    def test_reset_flow(self, repos, author):
        user = repos.users.create_reset_token("WES@example.com")
        token = user.reset_password_token
        assert len(token) == 40
        assert repos.users.get_by_reset_token(token) == author

        repos.users.reset_password(token, "new-password", "new-password")
        assert repos.users.authenticate("wes@example.com", "new-password")
        assert repos.users.get_by_reset_token(token) is None
        doc = repos.database.users.find_one({"_id": author.mongo_id})
        assert "reset_password_token" not in doc
        assert "reset_password_expires" not in doc

    def test_unknown_email_gets_no_token(self, repos):
        assert repos.users.create_reset_token("nobody@example.com") is None

    def test_expired_token(self, repos, author):
        token = repos.users.create_reset_token("wes@example.com").reset_password_token
        repos.database.users.update_one(
            {"_id": author.mongo_id},
            {"$set": {"reset_password_expires": datetime.utcnow() - timedelta(minutes=1)}},
        )
        assert repos.users.get_by_reset_token(token) is None
        with pytest.raises(NotFound):
            repos.users.reset_password(token, "x", "x")

    def test_mismatched_passwords(self, repos, author):
        token = repos.users.create_reset_token("wes@example.com").reset_password_token
        with pytest.raises(ValidationError):
            repos.users.reset_password(token, "one", "two")
        assert repos.users.get_by_reset_token(token) is not None

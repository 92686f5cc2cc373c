from __future__ import annotations

from typing import Any, Dict

import requests
from flask import Blueprint, current_app, flash, get_flashed_messages, jsonify, redirect, request, url_for
from flask_login import current_user, login_required, login_user, logout_user

from . import geocode, mail, repositories
from .errors import NotFound
from .queries import parse_page
from .uploads import save_photo


bp = Blueprint("api", __name__, url_prefix="/api")

PASSWORD_RESET_SENT = "A password reset has been mailed to you."


def payload() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def store_changes() -> Dict[str, Any]:
    """Pull the store fields that were actually sent, from JSON or a multipart form."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    form = request.form
    changes: Dict[str, Any] = {}
    for key in ("name", "description"):
        if key in form:
            changes[key] = form[key]
    if "tags" in form:
        changes["tags"] = form.getlist("tags")
    location: Dict[str, Any] = {}
    address = form.get("location[address]", form.get("address"))
    if address is not None:
        location["address"] = address
    lng = form.get("location[coordinates][0]", form.get("lng"))
    lat = form.get("location[coordinates][1]", form.get("lat"))
    if lng is not None or lat is not None:
        location["coordinates"] = [lng, lat]
    if location:
        changes["location"] = location
    return changes


def with_flashes(body: Dict[str, Any]) -> Dict[str, Any]:
    flashes = get_flashed_messages(with_categories=True)
    if flashes:
        body["flashes"] = [{"category": category, "message": message} for category, message in flashes]
    return body


# -- stores ------------------------------------------------------------------


@bp.route("/stores")
@bp.route("/stores/page/<int(signed=True):page>")
def stores_page(page: int = 1):
    if "page" in request.args:
        page = parse_page(request.args["page"])
    result = repositories().queries.page(page)
    if result.moved:
        if result.notice:
            flash(result.notice, "info")
        return redirect(url_for("api.stores_page", page=result.page))
    return jsonify(with_flashes(result.to_dict()))


@bp.route("/stores", methods=["POST"])
@login_required
def create_store():
    draft = store_changes()
    draft["author"] = current_user.mongo_id
    photo = save_photo(request.files.get("photo"), current_app.config["UPLOAD_FOLDER"])
    if photo:
        draft["photo"] = photo
    store = repositories().stores.create(draft)
    return jsonify(
        {
            "store": store.to_dict(),
            "message": f'Successfully created "{store.name}". Care to leave a review?',
            "url": url_for("api.store_by_slug", slug=store.slug),
        }
    ), 201


@bp.route("/stores/<store_id>", methods=["POST"])
@login_required
def update_store(store_id: str):
    changes = store_changes()
    photo = save_photo(request.files.get("photo"), current_app.config["UPLOAD_FOLDER"])
    if photo:
        changes["photo"] = photo
    store = repositories().stores.update(store_id, changes, current_user.mongo_id)
    return jsonify(
        {
            "store": store.to_dict(),
            "message": f"Successfully updated {store.name}.",
            "url": url_for("api.store_by_slug", slug=store.slug),
        }
    )


@bp.route("/store/<slug>")
def store_by_slug(slug: str):
    store = repositories().stores.find_by_slug(slug)
    return jsonify(with_flashes({"store": store.to_dict()}))


@bp.route("/stores/near")
def stores_near():
    stores = repositories().queries.near(
        request.args.get("lng"),
        request.args.get("lat"),
        max_distance=request.args.get("maxDistance"),
    )
    return jsonify([store.to_dict() for store in stores])


@bp.route("/search")
def search_stores():
    stores = repositories().queries.search(request.args.get("q", ""))
    return jsonify([store.to_dict() for store in stores])


@bp.route("/tags")
@bp.route("/tags/<tag>")
def stores_by_tag(tag: str = None):
    return jsonify(repositories().queries.by_tag(tag).to_dict())


@bp.route("/top")
def top_stores():
    return jsonify([store.to_dict() for store in repositories().queries.top()])


@bp.route("/stores/<store_id>/heart", methods=["POST"])
@login_required
def heart_store(store_id: str):
    repos = repositories()
    store = repos.stores.get(store_id)
    hearts = repos.users.toggle_heart(current_user.mongo_id, store.mongo_id)
    return jsonify({"hearts": hearts, "hearted": store.id in hearts})


@bp.route("/hearts")
@login_required
def hearted_stores():
    return jsonify([store.to_dict() for store in repositories().queries.hearted(current_user)])


@bp.route("/reviews/<store_id>", methods=["POST"])
@login_required
def add_review(store_id: str):
    data = payload()
    review = repositories().reviews.add_review(store_id, current_user.mongo_id, data.get("text"), data.get("rating"))
    return jsonify({"review": review.to_dict(), "message": "Review saved!"}), 201


# -- accounts ----------------------------------------------------------------


@bp.route("/register", methods=["POST"])
def register():
    data = payload()
    user = repositories().users.register(
        data.get("email", ""),
        data.get("name", ""),
        data.get("password", ""),
        data.get("password-confirm", data.get("password_confirm")),
    )
    login_user(user)
    return jsonify({"user": user.to_dict(), "message": "You are now logged in!"}), 201


@bp.route("/login", methods=["POST"])
def login():
    data = payload()
    user = repositories().users.authenticate(data.get("email", ""), data.get("password", ""))
    if not user:
        current_app.logger.info("Failed login for %s", data.get("email", ""))
        return jsonify({"error": "Failed Login!"}), 401
    login_user(user)
    return jsonify({"user": user.to_dict(), "message": "You are now logged in!"})


@bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"message": "You are now logged out!"})


@bp.route("/account")
@login_required
def account():
    return jsonify({"user": current_user.to_dict()})


@bp.route("/account", methods=["POST"])
@login_required
def update_account():
    data = payload()
    user = repositories().users.update_account(current_user.mongo_id, data.get("name", ""), data.get("email", ""))
    return jsonify({"user": user.to_dict(), "message": "Updated the profile!"})


@bp.route("/account/forgot", methods=["POST"])
def forgot_password():
    user = repositories().users.create_reset_token(payload().get("email", ""))
    if user:
        reset_url = url_for("api.reset_password", token=user.reset_password_token, _external=True)
        mail.send_password_reset(user, reset_url)
    return jsonify({"message": PASSWORD_RESET_SENT})


@bp.route("/account/reset/<token>")
def check_reset_token(token: str):
    if not repositories().users.get_by_reset_token(token):
        raise NotFound("Password reset link is invalid or has expired")
    return jsonify({"valid": True})


@bp.route("/account/reset/<token>", methods=["POST"])
def reset_password(token: str):
    data = payload()
    user = repositories().users.reset_password(
        token,
        data.get("password", ""),
        data.get("password-confirm", data.get("password_confirm")),
    )
    login_user(user)
    return jsonify({"user": user.to_dict(), "message": "Your password has been reset. You are now logged in!"})


# -- geocoding ---------------------------------------------------------------


@bp.route("/geocode/search")
def geocode_search():
    q = request.args.get("q", "").strip()
    if not q or len(q) < 2:
        return jsonify([])
    try:
        return jsonify(geocode.search(q, limit=request.args.get("limit", 8, type=int)))
    except requests.RequestException as exc:
        current_app.logger.warning("Geocoder search failed for %r: %s", q, exc)
        return jsonify([]), 502


@bp.route("/geocode/reverse")
def geocode_reverse():
    lat = request.args.get("lat")
    lon = request.args.get("lon")
    if lat is None or lon is None:
        return jsonify({}), 400
    try:
        return jsonify(geocode.reverse(lat, lon))
    except requests.RequestException as exc:
        current_app.logger.warning("Geocoder reverse lookup failed for %s,%s: %s", lat, lon, exc)
        return jsonify({}), 502

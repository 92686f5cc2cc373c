from __future__ import annotations

import os
from secrets import token_hex

from dotenv import load_dotenv


load_dotenv()


class Config:
    SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", token_hex(32))

    MONGODB_URI = os.environ.get("MONGODB_URI", "mongodb://127.0.0.1:27017/delicious")
    MONGODB_DB_NAME = os.environ.get("MONGODB_DB_NAME", "delicious")

    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", "static/uploads")
    MAX_CONTENT_LENGTH = 5 * 1024 * 1024

    STORES_PER_PAGE = int(os.environ.get("STORES_PER_PAGE", "4"))
    GEO_MAX_DISTANCE = int(os.environ.get("GEO_MAX_DISTANCE", "10000"))

    MAIL_HOST = os.environ.get("MAIL_HOST", "")
    MAIL_PORT = int(os.environ.get("MAIL_PORT", "587"))
    MAIL_USER = os.environ.get("MAIL_USER", "")
    MAIL_PASS = os.environ.get("MAIL_PASS", "")
    MAIL_FROM = os.environ.get("MAIL_FROM", "Delicious <noreply@example.com>")

    GEOCODER_URL = os.environ.get("GEOCODER_URL", "https://nominatim.openstreetmap.org")
    GEOCODER_USER_AGENT = os.environ.get("GEOCODER_USER_AGENT", "DeliciousApp/1.0 (+http://localhost)")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

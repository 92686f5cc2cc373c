from __future__ import annotations

import logging
import os
import uuid
from typing import Optional

from PIL import Image, UnidentifiedImageError
from werkzeug.datastructures import FileStorage

from .errors import ValidationError


logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}
PHOTO_WIDTH = 800
PHOTO_QUALITY = 60


def allowed_file(upload: FileStorage) -> bool:
    mimetype = upload.mimetype or ""
    return mimetype.startswith("image/") and mimetype.split("/", 1)[1].lower() in ALLOWED_EXTENSIONS


def save_photo(upload: Optional[FileStorage], upload_folder: str) -> Optional[str]:
    """Resize an uploaded photo to 800px wide and store it under a random name.

    Returns the new filename, or None when no file was sent.
    """
    if upload is None or not upload.filename:
        return None
    if not allowed_file(upload):
        raise ValidationError({"photo": "That filetype isn't allowed"})

    extension = upload.mimetype.split("/", 1)[1].lower()
    filename = f"{uuid.uuid4()}.{extension}"
    try:
        image = Image.open(upload.stream)
        image.load()
    except (UnidentifiedImageError, OSError):
        raise ValidationError({"photo": "That file is not a readable image"})

    height = max(1, round(image.height * PHOTO_WIDTH / image.width))
    resized = image.resize((PHOTO_WIDTH, height))
    if extension in ("jpg", "jpeg") and resized.mode not in ("RGB", "L"):
        resized = resized.convert("RGB")

    os.makedirs(upload_folder, exist_ok=True)
    resized.save(os.path.join(upload_folder, filename), quality=PHOTO_QUALITY)
    logger.info("Saved photo %s (%dx%d)", filename, resized.width, resized.height)
    return filename

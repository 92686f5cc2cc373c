from __future__ import annotations

from typing import Dict, Optional


class DeliciousError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, object]:
        return {"error": self.message}


class ValidationError(DeliciousError):
    """Missing or invalid fields; ``errors`` maps field name to message."""

    status_code = 400

    def __init__(self, errors: Dict[str, str], message: Optional[str] = None) -> None:
        super().__init__(message or "; ".join(errors.values()))
        self.errors = errors

    def to_dict(self) -> Dict[str, object]:
        return {"error": self.message, "errors": self.errors}


class NotFound(DeliciousError):
    status_code = 404


class PermissionDenied(DeliciousError):
    status_code = 403


class ConflictError(DeliciousError):
    status_code = 409

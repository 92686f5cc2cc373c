from __future__ import annotations

from typing import Any, Dict, List

import requests
from flask import current_app


def _get(path: str, params: Dict[str, Any]) -> requests.Response:
    return requests.get(
        f"{current_app.config['GEOCODER_URL'].rstrip('/')}/{path}",
        params=params,
        headers={
            "User-Agent": current_app.config["GEOCODER_USER_AGENT"],
            "Accept": "application/json",
        },
        timeout=10,
    )


def search(query: str, limit: int = 8) -> List[Dict[str, Any]]:
    resp = _get("search", {"q": query, "format": "jsonv2", "limit": limit, "addressdetails": 1})
    resp.raise_for_status()
    return resp.json()


def reverse(lat: str, lon: str) -> Dict[str, Any]:
    resp = _get("reverse", {"format": "jsonv2", "lat": lat, "lon": lon, "zoom": 14, "addressdetails": 1})
    resp.raise_for_status()
    return resp.json()

from __future__ import annotations

from logging import getLogger
from typing import Any

import httpx

from app.core.errors import PlatformError

logger = getLogger(__name__)


class PlatformClient:
    """
    Minimal client for the remote course platform.

    Only two endpoints matter to the bridge:
      GET /viewer/schools/courses            -> courses the token can see
      GET /viewer/courses/{id}/sections      -> full course manifest
    """

    def __init__(self, base_url: str, timeout_s: float = 30.0, transport: httpx.BaseTransport | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._transport = transport

    def _get(self, path: str, token: str) -> Any:
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json, text/plain, */*",
        }
        with httpx.Client(timeout=self.timeout_s, transport=self._transport) as client:
            r = client.get(f"{self.base_url}{path}", headers=headers)
            r.raise_for_status()
            return r.json()

    def list_courses(self, token: str) -> list[dict[str, Any]]:
        try:
            data = self._get("/viewer/schools/courses", token)
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Listing courses failed: %s", e)
            raise PlatformError("Could not fetch courses from the platform.") from e

        courses = []
        for item in data.get("courses") or []:
            info = item.get("course_info") or item
            courses.append(
                {
                    "id": info.get("id"),
                    "name": info.get("name"),
                    "cover_image": info.get("course_img") or info.get("cover_image"),
                    "product_id": item.get("product_id"),
                }
            )
        return courses

    def get_course_sections(self, course_id: str, token: str) -> dict[str, Any]:
        if not course_id:
            raise PlatformError("A course id is required.")
        try:
            data = self._get(f"/viewer/courses/{course_id}/sections", token)
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Fetching sections of course %s failed: %s", course_id, e)
            raise PlatformError("Could not fetch the course structure from the platform.") from e
        if not isinstance(data, dict):
            raise PlatformError("Unexpected course structure returned by the platform.")
        return data

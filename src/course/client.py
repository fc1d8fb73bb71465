"""HTTP client for the course persistence service."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import httpx

from src.config import ApiConfig
from src.course.models import Course, CreateCourseRequest, ExportResult, TestingResult
from src.editing.errors import RemoteFailure

logger = logging.getLogger(__name__)


class CourseClient:
    """Thin async wrapper around the backend REST API.

    Every transport error, HTTP error status or malformed payload surfaces as
    RemoteFailure; there is no retry.
    """

    def __init__(self, config: ApiConfig, transport: httpx.AsyncBaseTransport | None = None):
        self._cfg = config
        self._http = httpx.AsyncClient(
            base_url=config.base_url.rstrip("/") + "/",
            timeout=config.timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def list_courses(self, mode: str | None = None,
                           object_type: str | None = None,
                           limit: int | None = None) -> list[Course]:
        params = {k: v for k, v in
                  {"mode": mode, "object_type": object_type, "limit": limit}.items()
                  if v is not None}
        data = await self._request("GET", "courses", params=params)
        items = data.get("courses", []) if isinstance(data, dict) else data
        return [self._course(item) for item in items]

    async def get_course(self, course_id: str) -> Course:
        return self._course(await self._request("GET", f"courses/{course_id}"))

    async def create_course(self, request: CreateCourseRequest) -> Course:
        data = await self._request("POST", "courses", json=request.to_dict())
        course = self._course(data)
        logger.info("Saved course %s (%s, %d points)",
                    course.id, course.object_type.value, len(request.points))
        return course

    async def update_course(self, course_id: str, updates: dict) -> Course:
        """Partial update of a stored course; the backend returns the full record."""
        data = await self._request("PUT", f"courses/{course_id}", json=updates)
        course = self._course(data)
        logger.info("Updated course %s (%s)", course.id, ", ".join(sorted(updates)))
        return course

    async def delete_course(self, course_id: str) -> None:
        await self._request("DELETE", f"courses/{course_id}")

    async def get_random_testing_course(self) -> Course:
        course = self._course(await self._request("GET", "courses/random/testing"))
        if course.correct_object_type is None:
            # Older backends reveal the answer only through object_type.
            course.correct_object_type = course.object_type
        return course

    async def submit_testing_result(self, course_id: str, selected_object_type: str,
                                    correct_object_type: str) -> TestingResult:
        data = await self._request("POST", "export/testing-session", json={
            "course_id": course_id,
            "selected_object_type": selected_object_type,
            "correct_object_type": correct_object_type,
        })
        if not isinstance(data, dict):
            raise RemoteFailure("Malformed testing result")
        return TestingResult.from_dict(data)

    async def export_csv(self, fmt: str = "both") -> ExportResult:
        data = await self._request("GET", "export/csv", params={"format": fmt})
        try:
            return ExportResult.from_dict(data)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise RemoteFailure(f"Malformed export response: {exc}") from exc

    async def get_testing_stats(self) -> dict:
        return await self._request("GET", "export/testing-stats")

    async def download(self, download_url: str, dest_dir: str | Path, name: str) -> Path:
        """Fetch one exported file into dest_dir."""
        url = download_url
        if not url.startswith(("http://", "https://")):
            url = self._cfg.download_base_url.rstrip("/") + "/" + url.lstrip("/")
        dest = Path(dest_dir)
        dest.mkdir(parents=True, exist_ok=True)
        target = dest / Path(name).name
        try:
            async with self._http.stream("GET", url) as response:
                response.raise_for_status()
                with open(target, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        f.write(chunk)
        except httpx.HTTPError as exc:
            logger.error("Download of %s failed: %s", url, exc)
            raise RemoteFailure(f"Failed to download {name}") from exc
        return target

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._http.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error("%s %s -> HTTP %d", method, path, exc.response.status_code)
            raise RemoteFailure(
                f"Course service returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("%s %s failed: %s", method, path, exc)
            raise RemoteFailure(f"Course service unreachable: {exc}") from exc

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteFailure("Course service returned invalid JSON") from exc

    @staticmethod
    def _course(data: Any) -> Course:
        try:
            return Course.from_dict(data)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise RemoteFailure(f"Malformed course record: {exc}") from exc

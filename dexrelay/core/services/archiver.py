"""Wayback Machine snapshots of a market's metric URL through SavePageNow."""

from __future__ import annotations

import asyncio
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

import aiohttp
from loguru import logger

SAVE_ENDPOINT = "https://web.archive.org/save"
WAYBACK_ORIGIN = "https://web.archive.org"

_TIMESTAMP_IN_PATH = re.compile(r"/web/(\d{14})/")
_JOB_IN_STATUS_PATH = re.compile(r"/save/status/([^/?#]+)")
_URL_FIELDS = ("archived_url", "wayback_url", "capture_url")


@dataclass(frozen=True)
class ArchiveSnapshot:
    """A captured page: its ``web.archive.org`` URL and the 14-digit capture timestamp."""

    url: str
    timestamp: str | None = None


def _absolute(location: str) -> str:
    return location if location.startswith("http") else f"{WAYBACK_ORIGIN}{location}"


def _timestamp_from(location: str | None) -> str | None:
    match = _TIMESTAMP_IN_PATH.search(location or "")
    return match.group(1) if match else None


def _snapshot_from_status(data: dict[str, Any], original_url: str) -> ArchiveSnapshot | None:
    timestamp = data.get("timestamp")
    for field in _URL_FIELDS:
        if data.get(field):
            return ArchiveSnapshot(str(data[field]), timestamp)
    if isinstance(data.get("content_location"), str):
        location = data["content_location"]
        return ArchiveSnapshot(_absolute(location), timestamp or _timestamp_from(location))
    if timestamp and data.get("status") == "success":
        source = data.get("original_url") or original_url
        return ArchiveSnapshot(f"{WAYBACK_ORIGIN}/web/{timestamp}/{source}", timestamp)
    return None


class SnapshotArchiver:
    """Asks SavePageNow to capture a URL and resolves the resulting snapshot.

    Archiving is best effort: every failure, including the overall ``timeout``,
    is logged and reported as ``None``.
    """

    def __init__(
        self,
        enabled: bool = True,
        timeout: float = 30.0,
        poll_interval: float = 2.0,
        access_key: str = "",
        secret_key: str = "",
        user_agent: str = "dexrelay",
        session_factory: Callable[[], Any] | None = None,
    ):
        self.enabled = enabled
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.user_agent = user_agent
        self._auth = f"LOW {access_key}:{secret_key}" if access_key and secret_key else None
        self._session_factory = session_factory or aiohttp.ClientSession

    @property
    def headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", "User-Agent": self.user_agent}
        if self._auth:
            headers["Authorization"] = self._auth
        return headers

    async def archive(self, url: str) -> ArchiveSnapshot | None:
        """Capture ``url``; ``None`` when disabled, not http(s), or the capture did not finish in time."""
        if not self.enabled:
            return None
        if urlparse(url).scheme not in {"http", "https"}:
            logger.warning("Only http and https URLs can be archived", extra={"url": url})
            return None

        try:
            async with asyncio.timeout(self.timeout):
                snapshot = await self._capture(url)
        except TimeoutError:
            logger.warning("Wayback capture timed out", extra={"url": url, "timeout": self.timeout})
            return None
        except Exception as exc:
            logger.warning("Wayback capture failed", extra={"url": url, "error": str(exc)})
            return None

        if snapshot is None:
            logger.warning("Wayback capture returned no snapshot", extra={"url": url})
        else:
            logger.info("Metric URL archived", extra={"url": url, "wayback_url": snapshot.url})
        return snapshot

    async def _capture(self, url: str) -> ArchiveSnapshot | None:
        form = {
            "url": url,
            "capture_all": "1",
            "capture_outlinks": "0",
            "capture_screenshot": "1",
            "skip_first_archive": "1",
        }
        async with self._session_factory() as session:
            async with session.post(SAVE_ENDPOINT, data=form, headers=self.headers) as response:
                if response.status >= 400:
                    raise aiohttp.ClientError(f"SavePageNow rejected the capture: {response.status} {response.reason}")
                location = response.headers.get("Content-Location") or response.headers.get("Location")
                data = await response.json(content_type=None) if _is_json(response) else {}

            job_match = _JOB_IN_STATUS_PATH.search(location or "")
            if location and job_match is None:
                return ArchiveSnapshot(_absolute(location), data.get("timestamp") or _timestamp_from(location))
            snapshot = _snapshot_from_status(data, url)
            if snapshot is not None:
                return snapshot

            job_id = job_match.group(1) if job_match else data.get("job_id")
            if not job_id:
                return None
            return await self._poll(session, str(job_id), url)

    async def _poll(self, session: Any, job_id: str, url: str) -> ArchiveSnapshot | None:
        status_url = f"{SAVE_ENDPOINT}/status/{job_id}"
        while True:
            async with session.get(status_url, headers=self.headers) as response:
                data = await response.json(content_type=None) if response.status < 400 else {}
            if data.get("status") == "error":
                logger.warning(
                    "SavePageNow capture job failed",
                    extra={"job_id": job_id, "reason": data.get("message") or data.get("status_ext")},
                )
                return None
            snapshot = _snapshot_from_status(data, url)
            if snapshot is not None:
                return snapshot
            await asyncio.sleep(self.poll_interval)


def _is_json(response: Any) -> bool:
    return "json" in (response.headers.get("Content-Type") or "")


__all__ = ["ArchiveSnapshot", "SAVE_ENDPOINT", "SnapshotArchiver"]

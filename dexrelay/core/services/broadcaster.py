"""Best-effort progress broadcasts over Redis pub/sub."""

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime
from typing import Any

import redis.asyncio as aioredis
from loguru import logger

from dexrelay.core.monitoring import MetricsCollector, get_metrics_collector


class ProgressBroadcaster:
    """Publishes step transitions on ``<prefix><pipeline id>`` without touching the caller's path.

    Each publish runs as a detached task with its own timeout. Failures are logged at
    debug level and counted, never raised.
    """

    def __init__(
        self,
        redis_url: str | None = None,
        channel_prefix: str = "deploy-",
        timeout: float = 2.0,
        client: Any = None,
        metrics: MetricsCollector | None = None,
    ):
        self.redis_url = redis_url or None
        self.channel_prefix = channel_prefix
        self.timeout = timeout
        self._client = client
        self._tasks: set[asyncio.Task] = set()
        self.metrics = metrics or get_metrics_collector()

    @property
    def enabled(self) -> bool:
        return self._client is not None or self.redis_url is not None

    def _ensure_client(self) -> Any:
        if self._client is None and self.redis_url:
            self._client = aioredis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=self.timeout,
                socket_timeout=self.timeout,
            )
        return self._client

    def channel(self, pipeline_id: str) -> str:
        return f"{self.channel_prefix}{pipeline_id}"

    def publish(self, pipeline_id: str | None, step: str, status: str, data: dict[str, Any] | None = None) -> None:
        """Schedule a broadcast and return immediately."""
        if not pipeline_id or not self.enabled:
            return
        payload = {
            "step": step,
            "status": status,
            "data": data or {},
            "timestamp": datetime.now(UTC).isoformat(),
        }
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, progress broadcast skipped", extra={"step": step})
            return
        task = loop.create_task(self._send(self.channel(pipeline_id), payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _send(self, channel: str, payload: dict[str, Any]) -> None:
        try:
            client = self._ensure_client()
            async with asyncio.timeout(self.timeout):
                await client.publish(channel, json.dumps(payload, default=str))
        except Exception as e:
            self.metrics.record_broadcast_failure()
            logger.debug(
                "Progress broadcast failed",
                extra={"channel": channel, "step": payload.get("step"), "error": repr(e)},
            )

    def bind(self, pipeline_id: str | None) -> BoundBroadcaster:
        return BoundBroadcaster(self, pipeline_id)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight broadcasts (bounded by ``timeout``)."""
        if not self._tasks:
            return
        tasks = list(self._tasks)
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()

    async def close(self) -> None:
        await self.drain(self.timeout)
        if self._client is not None and hasattr(self._client, "aclose"):
            await self._client.aclose()
        self._client = None


class BoundBroadcaster:
    """Broadcaster bound to one pipeline id."""

    def __init__(self, broadcaster: ProgressBroadcaster, pipeline_id: str | None):
        self._broadcaster = broadcaster
        self.pipeline_id = pipeline_id

    def publish(self, step: str, status: str, data: dict[str, Any] | None = None) -> None:
        self._broadcaster.publish(self.pipeline_id, step, status, data)


__all__ = ["BoundBroadcaster", "ProgressBroadcaster"]

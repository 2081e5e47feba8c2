"""Tests for SavePageNow snapshots of metric URLs."""

import pytest

from dexrelay.core.services.archiver import SAVE_ENDPOINT, ArchiveSnapshot, SnapshotArchiver

METRIC_URL = "https://example.com/metrics/aluminium"


class _Response:
    def __init__(self, status: int = 200, headers: dict | None = None, body: dict | None = None):
        self.status = status
        self.reason = "Service Unavailable" if status >= 500 else "OK"
        self.headers = headers or {}
        self._body = body or {}

    async def json(self, content_type=None):
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


class _Session:
    """Serves one POST response and then status responses in order, repeating the last."""

    def __init__(self, post: _Response, statuses: list[_Response] | None = None):
        self.post_response = post
        self.statuses = list(statuses or [])
        self.calls: list[tuple[str, str, dict | None, dict]] = []

    def post(self, url, data=None, headers=None):
        self.calls.append(("POST", url, data, headers))
        return self.post_response

    def get(self, url, headers=None):
        self.calls.append(("GET", url, None, headers))
        return self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


def _archiver(session: _Session, **kwargs) -> SnapshotArchiver:
    kwargs.setdefault("poll_interval", 0)
    return SnapshotArchiver(session_factory=lambda: session, **kwargs)


def _json(body: dict) -> _Response:
    return _Response(headers={"Content-Type": "application/json"}, body=body)


@pytest.mark.asyncio
async def test_content_location_is_the_snapshot():
    location = f"/web/20261019120000/{METRIC_URL}"
    session = _Session(_Response(headers={"Content-Location": location}))

    snapshot = await _archiver(session).archive(METRIC_URL)

    assert snapshot == ArchiveSnapshot(f"https://web.archive.org{location}", "20261019120000")
    method, url, form, _ = session.calls[0]
    assert (method, url) == ("POST", SAVE_ENDPOINT)
    assert form["url"] == METRIC_URL
    assert form["capture_screenshot"] == "1"


@pytest.mark.asyncio
async def test_capture_job_is_polled_until_it_succeeds():
    session = _Session(
        _json({"url": METRIC_URL, "job_id": "spn2-abc"}),
        [
            _json({"status": "pending"}),
            _json({"status": "success", "timestamp": "20261019120500", "original_url": METRIC_URL}),
        ],
    )

    snapshot = await _archiver(session).archive(METRIC_URL)

    assert snapshot.url == f"https://web.archive.org/web/20261019120500/{METRIC_URL}"
    assert snapshot.timestamp == "20261019120500"
    assert [call[1] for call in session.calls[1:]] == [f"{SAVE_ENDPOINT}/status/spn2-abc"] * 2


@pytest.mark.asyncio
async def test_status_location_header_starts_polling():
    session = _Session(
        _Response(headers={"Location": "/save/status/spn2-xyz"}),
        [_json({"status": "success", "archived_url": "https://web.archive.org/web/2026/x", "timestamp": "2026"})],
    )

    snapshot = await _archiver(session).archive(METRIC_URL)

    assert snapshot == ArchiveSnapshot("https://web.archive.org/web/2026/x", "2026")
    assert session.calls[1][1] == f"{SAVE_ENDPOINT}/status/spn2-xyz"


@pytest.mark.asyncio
async def test_failed_capture_job_yields_nothing():
    session = _Session(
        _json({"job_id": "spn2-bad"}),
        [_json({"status": "error", "status_ext": "error:blocked-url"})],
    )

    assert await _archiver(session).archive(METRIC_URL) is None


@pytest.mark.asyncio
async def test_server_error_yields_nothing():
    session = _Session(_Response(status=503))

    assert await _archiver(session).archive(METRIC_URL) is None


@pytest.mark.asyncio
async def test_capture_that_never_finishes_times_out():
    session = _Session(_json({"job_id": "spn2-slow"}), [_json({"status": "pending"})])

    snapshot = await _archiver(session, timeout=0.05, poll_interval=0.01).archive(METRIC_URL)

    assert snapshot is None
    assert len(session.calls) > 2


@pytest.mark.asyncio
async def test_non_http_urls_and_disabled_archiver_skip_the_request():
    session = _Session(_Response())

    assert await _archiver(session).archive("ftp://example.com/data.csv") is None
    assert await _archiver(session, enabled=False).archive(METRIC_URL) is None
    assert session.calls == []


@pytest.mark.asyncio
async def test_keys_are_sent_as_low_authorization():
    session = _Session(_Response(headers={"Content-Location": f"/web/20261019120000/{METRIC_URL}"}))

    await _archiver(session, access_key="access", secret_key="secret", user_agent="dexrelay-test").archive(METRIC_URL)

    headers = session.calls[0][3]
    assert headers["Authorization"] == "LOW access:secret"
    assert headers["User-Agent"] == "dexrelay-test"

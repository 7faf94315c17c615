"""Tests for the GitHub contents backend against a fake contents API."""

import base64
import hashlib
import json
import time
from datetime import timedelta

import httpx
import pytest

from petition_monitor.errors import StoreConflict, StoreUnavailable
from petition_monitor.storage.backends import GitHubContentsBackend
from petition_monitor.storage.store import VersionedStore

API = "https://api.github.test"
PREFIX = "/repos/owner/repo/contents/"


class FakeContentsAPI:
    """Just enough of the GitHub contents API: GET and PUT with sha checks."""

    def __init__(self, inline_limit: int = 1_000_000):
        self.files: dict[str, tuple[str, str]] = {}
        self.inline_limit = inline_limit
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.startswith("/raw/"):
            content, _ = self.files[path[len("/raw/"):]]
            return httpx.Response(200, text=content)

        name = path[len(PREFIX):]
        if request.method == "GET":
            return self._get(name)
        return self._put(name, json.loads(request.content))

    def _get(self, name):
        if name not in self.files:
            return httpx.Response(404, json={"message": "Not Found"})

        content, sha = self.files[name]
        body = {"sha": sha, "download_url": f"{API}/raw/{name}"}
        if len(content) <= self.inline_limit:
            body.update(encoding="base64", content=base64.b64encode(content.encode()).decode())
        else:
            body.update(encoding="none", content="")
        return httpx.Response(200, json=body)

    def _put(self, name, body):
        current = self.files.get(name)
        if current and "sha" not in body:
            return httpx.Response(422, json={"message": "sha wasn't supplied"})
        if current and body["sha"] != current[1]:
            return httpx.Response(409, json={"message": "does not match"})

        content = base64.b64decode(body["content"]).decode()
        sha = hashlib.sha1(content.encode()).hexdigest()
        self.files[name] = (content, sha)
        return httpx.Response(200 if current else 201, json={"content": {"sha": sha}})


@pytest.fixture
def api():
    return FakeContentsAPI()


@pytest.fixture
def backend(api):
    return GitHubContentsBackend(
        "secret-token", "owner", "repo", api_url=API, transport=httpx.MockTransport(api.handler)
    )


@pytest.mark.asyncio
async def test_read_missing(backend):
    assert await backend.read("missing.json") is None


@pytest.mark.asyncio
async def test_create_read_update(backend, api):
    version = await backend.write("data.json", "[1]", None)
    blob = await backend.read("data.json")

    assert blob.content == "[1]"
    assert blob.version == version

    await backend.write("data.json", "[1, 2]", version)
    assert (await backend.read("data.json")).content == "[1, 2]"
    assert api.requests[0].headers["Authorization"] == "token secret-token"


@pytest.mark.asyncio
async def test_stale_sha_conflicts(backend):
    stale = await backend.write("data.json", "[1]", None)
    await backend.write("data.json", "[1, 2]", stale)

    with pytest.raises(StoreConflict):
        await backend.write("data.json", "[1, 3]", stale)


@pytest.mark.asyncio
async def test_create_over_existing_file_conflicts(backend):
    await backend.write("data.json", "[1]", None)

    with pytest.raises(StoreConflict):
        await backend.write("data.json", "[2]", None)


@pytest.mark.asyncio
async def test_large_file_read_through_download_url():
    api = FakeContentsAPI(inline_limit=5)
    backend = GitHubContentsBackend(
        "token", "owner", "repo", api_url=API, transport=httpx.MockTransport(api.handler)
    )
    await backend.write("big.json", "[1, 2, 3, 4, 5]", None)

    assert (await backend.read("big.json")).content == "[1, 2, 3, 4, 5]"


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 403, 500])
async def test_http_errors_are_unavailable(status):
    transport = httpx.MockTransport(lambda request: httpx.Response(status))
    backend = GitHubContentsBackend("token", "owner", "repo", api_url=API, transport=transport)

    with pytest.raises(StoreUnavailable):
        await backend.read("data.json")
    with pytest.raises(StoreUnavailable):
        await backend.write("data.json", "[]", None)


@pytest.mark.asyncio
async def test_transport_error_is_unavailable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    backend = GitHubContentsBackend(
        "token", "owner", "repo", api_url=API, transport=httpx.MockTransport(handler)
    )

    with pytest.raises(StoreUnavailable):
        await backend.read("data.json")


@pytest.mark.asyncio
async def test_branch_is_sent(api):
    backend = GitHubContentsBackend(
        "token", "owner", "repo", branch="data", api_url=API, transport=httpx.MockTransport(api.handler)
    )
    await backend.write("data.json", "[]", None)
    await backend.read("data.json")

    assert json.loads(api.requests[0].content)["branch"] == "data"
    assert api.requests[1].url.params["ref"] == "data"


@pytest.mark.asyncio
async def test_store_over_github(backend, api, make_record, t0):
    store = VersionedStore(backend)

    await store.append(make_record(t0, 1_000))
    await store.append(make_record(t0 + timedelta(minutes=5), 1_050))

    assert [r.count for r in await store.history()] == [1_000, 1_050]
    assert (await store.latest()).count == 1_050
    assert set(api.files) == {"eci_data_latest.json", "eci_data_history.json"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>maintenance</html>"),
        httpx.Response(200, json=[{"name": "a.json"}]),
        httpx.Response(200, json={"content": ""}),
    ],
    ids=["not-json", "directory-listing", "no-sha"],
)
async def test_unexpected_read_body_is_unavailable(response):
    transport = httpx.MockTransport(lambda request: response)
    backend = GitHubContentsBackend("token", "owner", "repo", api_url=API, transport=transport)

    with pytest.raises(StoreUnavailable):
        await backend.read("data.json")


@pytest.mark.asyncio
async def test_slow_response_is_cut_off_at_timeout(slow_http_server):
    async with slow_http_server() as base_url:
        backend = GitHubContentsBackend("token", "owner", "repo", api_url=base_url, timeout=0.5)

        started = time.monotonic()
        try:
            with pytest.raises(StoreUnavailable):
                await backend.read("data.json")
        finally:
            await backend.close()

        assert time.monotonic() - started < 2.0

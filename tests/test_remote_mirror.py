"""
tests/test_remote_mirror.py

Tests for gateway/services/remote_mirror.py using httpx.MockTransport.
"""

import json

import httpx
import pytest

from gateway.services.remote_mirror import HttpRemoteMirror


def _mirror(handler) -> HttpRemoteMirror:
    return HttpRemoteMirror("http://mirror.test/", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_read_record_returns_json_or_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/users/u1":
            return httpx.Response(200, json={"id": "u1"})
        return httpx.Response(404)

    mirror = _mirror(handler)

    assert await mirror.read_record("users", "u1") == {"id": "u1"}
    assert await mirror.read_record("users", "ghost") is None


@pytest.mark.asyncio
async def test_update_record_patches_fields() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    await _mirror(handler).update_record("sensors", "SN1", {"is_connected": False})

    assert seen[0].method == "PATCH"
    assert seen[0].url.path == "/sensors/SN1"
    assert json.loads(seen[0].content) == {"is_connected": False}


@pytest.mark.asyncio
async def test_server_error_propagates() -> None:
    mirror = _mirror(lambda request: httpx.Response(503))

    with pytest.raises(httpx.HTTPStatusError):
        await mirror.read_record("users", "u1")
    with pytest.raises(httpx.HTTPStatusError):
        await mirror.update_record("sensors", "SN1", {})

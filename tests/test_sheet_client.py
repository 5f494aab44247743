from __future__ import annotations

import asyncio
import json
from typing import List

import httpx
import pytest

from registration_desk.config import SHEET_URL_PLACEHOLDER
from registration_desk.domain.models import RegistrationData
from registration_desk.sheets.client import SheetReadError, SheetSyncClient

ENDPOINT = "https://script.test/macros/s/abc/exec"


def _client(handler) -> SheetSyncClient:
    return SheetSyncClient(ENDPOINT, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.mark.parametrize("url", ["", None, SHEET_URL_PLACEHOLDER])
def test_unconfigured_endpoint(url) -> None:
    client = SheetSyncClient(url)
    assert client.configured is False
    assert asyncio.run(client.push(RegistrationData(name="Asha"))) is False
    assert asyncio.run(client.pull_all()) == []


def test_push_reports_dispatch_not_outcome() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        # Apps Script answers with a redirect; an error page must not matter either.
        return httpx.Response(302, headers={"Location": "https://script.googleusercontent.test/echo"})

    client = _client(handler)
    ok = asyncio.run(client.push(RegistrationData(name="Asha", admission_id="EHA-1")))
    assert ok is True
    assert len(seen) == 1
    assert seen[0].method == "POST"
    body = json.loads(seen[0].content)
    assert body["name"] == "Asha"
    assert set(body) == set(RegistrationData().to_dict())


def test_push_ignores_server_errors() -> None:
    client = _client(lambda request: httpx.Response(500, text="boom"))
    assert asyncio.run(client.push(RegistrationData(name="Asha"))) is True


def test_push_transport_failure_is_false() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    assert asyncio.run(_client(handler).push(RegistrationData(name="Asha"))) is False


def test_pull_returns_object_rows_only() -> None:
    rows = [{"Admission ID": "EHA-1", "Name": "Asha"}, "junk", {"Name": "Ravi"}]
    client = _client(lambda request: httpx.Response(200, json=rows))
    assert asyncio.run(client.pull_all()) == [rows[0], rows[2]]


def test_pull_non_list_body_is_empty() -> None:
    client = _client(lambda request: httpx.Response(200, json={"rows": []}))
    assert asyncio.run(client.pull_all()) == []


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"error": "Sheet not found"}),
        httpx.Response(200, text="<html>login</html>"),
        httpx.Response(503, text="unavailable"),
    ],
)
def test_pull_failures_raise(response) -> None:
    client = _client(lambda request: response)
    with pytest.raises(SheetReadError):
        asyncio.run(client.pull_all())

import json

import httpx
import pytest

from conftest import make_session
from pokerledger.errors import (
    AuthenticationError,
    PermissionDeniedError,
    SessionValidationError,
    TransientNetworkError,
)
from pokerledger.repositories.remote_repo import RemoteSessionRepository


def repo_with(handler, token="tok"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://ledger.test/api")
    return RemoteSessionRepository(client, lambda: token)


async def test_list_owned_sends_bearer_token():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["Authorization"]
        seen["path"] = request.url.path
        return httpx.Response(200, json=[{"id": "s1"}])

    assert await repo_with(handler).list_owned() == [{"id": "s1"}]
    assert seen == {"auth": "Bearer tok", "path": "/api/sessions/owned"}


async def test_create_payload_omits_client_only_fields():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(201, json={"id": "s1"})

    assert await repo_with(handler).create(make_session()) is True
    assert "is_owner" not in bodies[0]
    assert "physical_points_on_table" not in bodies[0]
    assert bodies[0]["point_to_cash_rate"] == "0.10"


async def test_create_conflict_returns_false():
    repo = repo_with(lambda r: httpx.Response(409, json={"detail": "exists"}))
    assert await repo.create(make_session()) is False


async def test_update_and_delete_missing_return_false():
    repo = repo_with(lambda r: httpx.Response(404))
    assert await repo.update(make_session()) is False
    assert await repo.delete("s1") is False
    assert await repo.revoke_access("s1") is False


@pytest.mark.parametrize("status,error", [
    (401, AuthenticationError),
    (403, PermissionDeniedError),
    (422, SessionValidationError),
    (429, TransientNetworkError),
    (503, TransientNetworkError),
])
async def test_status_mapping(status, error):
    repo = repo_with(lambda r: httpx.Response(status, text="nope"))
    with pytest.raises(error):
        await repo.list_granted()


async def test_transport_failure_is_transient():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(TransientNetworkError):
        await repo_with(handler).list_owned()


async def test_timeout_is_transient():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(TransientNetworkError):
        await repo_with(handler).list_owned()


async def test_no_token_never_hits_network():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=[])

    with pytest.raises(AuthenticationError):
        await repo_with(handler, token=None).list_owned()
    assert calls == []

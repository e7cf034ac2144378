# pokerledger/repositories/remote_repo.py

import logging
from typing import Callable, List, Optional

import httpx

from pokerledger.errors import (
    AuthenticationError,
    PermissionDeniedError,
    SessionValidationError,
    TransientNetworkError,
)
from pokerledger.models import Session

logger = logging.getLogger(__name__)

# サーバー側で決める項目は送らない
_CLIENT_ONLY_FIELDS = {"is_owner", "physical_points_on_table"}


def session_payload(session: Session) -> dict:
    return session.model_dump(mode="json", exclude=_CLIENT_ONLY_FIELDS)


class RemoteSessionRepository:
    """Client for the remote session store API.

    Every call may be slow or fail. Failures are mapped onto the ledger's
    error taxonomy; 404/409 responses are returned to the caller.
    """

    def __init__(self, client: httpx.AsyncClient, get_token: Callable[[], Optional[str]]):
        self.client = client
        self.get_token = get_token

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        token = self.get_token()
        if not token:
            raise AuthenticationError("No access token")
        headers = {"Authorization": f"Bearer {token}"}
        try:
            resp = await self.client.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientNetworkError(f"{method} {path} timed out: {e}") from e
        except httpx.TransportError as e:
            raise TransientNetworkError(f"{method} {path} failed: {e}") from e

        logger.debug("%s %s -> %s", method, path, resp.status_code)
        if resp.status_code == 401:
            raise AuthenticationError(resp.text or "Unauthorized")
        if resp.status_code == 403:
            raise PermissionDeniedError(resp.text or "Forbidden")
        if resp.status_code == 429 or resp.status_code >= 500:
            raise TransientNetworkError(f"{method} {path} -> {resp.status_code}")
        if resp.status_code in (400, 422):
            raise SessionValidationError(f"{method} {path} rejected: {resp.text}")
        return resp

    async def list_owned(self) -> List[dict]:
        resp = await self._request("GET", "/sessions/owned")
        return resp.json()

    async def list_granted(self) -> List[dict]:
        """Sessions shared with us whose invitation was accepted."""
        resp = await self._request("GET", "/sessions/granted")
        return resp.json()

    async def create(self, session: Session) -> bool:
        """False when the server already has a session with this id."""
        resp = await self._request("POST", "/sessions", json=session_payload(session))
        return resp.status_code != 409

    async def update(self, session: Session) -> bool:
        """False when the session no longer exists remotely."""
        resp = await self._request("PUT", f"/sessions/{session.id}", json=session_payload(session))
        return resp.status_code != 404

    async def delete(self, session_id: str) -> bool:
        resp = await self._request("DELETE", f"/sessions/{session_id}")
        return resp.status_code != 404

    async def revoke_access(self, session_id: str) -> bool:
        resp = await self._request("DELETE", f"/sessions/{session_id}/access")
        return resp.status_code != 404

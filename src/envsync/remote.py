"""
Remote store — the directory of record behind the REST API.

The engine only ever talks to a ``RemoteStore``. ``HttpRemoteStore`` is
the real implementation; tests inject an in-memory one. Transport errors
are translated into ``NetworkFailure`` / ``RemoteError`` here so nothing
above this module depends on ``requests``.

Everything sent through this interface is ciphertext, a wrapped key or
a public key.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from .errors import NetworkFailure, RemoteError
from .models import (
    BatchChanges,
    BatchResult,
    EncryptedSecret,
    Environment,
    ProjectMember,
    RecoveryBackup,
    UserRecord,
)

logger = logging.getLogger("envsync.remote")

DEFAULT_API_URL = "http://localhost:3000/api/v1"


class RemoteStore(ABC):
    """Operations the engine consumes from the CRUD API."""

    # -- identity ----------------------------------------------------------

    @abstractmethod
    def get_my_public_key(self) -> Optional[str]:
        """GET /users/key — the caller's registered public key, if any."""

    @abstractmethod
    def upload_public_key(self, public_key: str) -> None:
        """POST /users/key."""

    @abstractmethod
    def download_backup(self) -> Optional[RecoveryBackup]:
        """GET /users/backup — None when no backup was ever uploaded."""

    @abstractmethod
    def upload_backup(self, backup: RecoveryBackup) -> None:
        """POST /users/backup."""

    @abstractmethod
    def lookup_user(self, email: str) -> Optional[UserRecord]:
        """GET /users/lookup?email= — None when the user is unknown."""

    # -- project keys ------------------------------------------------------

    @abstractmethod
    def get_project_key(self, project_id: str) -> Optional[str]:
        """GET /projects/:id/members/key — the caller's wrapped key, if any."""

    @abstractmethod
    def init_project_key(self, project_id: str, encrypted_key: str) -> None:
        """POST /projects/:id/members/key — first wrapped copy for the caller."""

    @abstractmethod
    def update_member_key(self, project_id: str, user_id: str, encrypted_key: str) -> None:
        """PATCH /projects/:id/members/:userId/key."""

    @abstractmethod
    def list_members(self, project_id: str) -> list[ProjectMember]:
        """GET /projects/:id/members."""

    # -- environments and variables ----------------------------------------

    @abstractmethod
    def list_environments(self, project_id: str) -> list[Environment]:
        """GET /projects/:id/environments."""

    @abstractmethod
    def list_variables(self, project_id: str, env_id: str) -> list[EncryptedSecret]:
        """GET /projects/:id/environments/:envId/variables."""

    @abstractmethod
    def push_batch(self, project_id: str, env_id: str, changes: BatchChanges) -> BatchResult:
        """POST /projects/:id/environments/:envId/variables/batch."""


def _error_message(response) -> str:
    """Pull the server's message out of an error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason or "Request failed"
    message = body.get("message") if isinstance(body, dict) else None
    if isinstance(message, list):
        return "; ".join(str(m) for m in message)
    return str(message or response.reason or "Request failed")


class HttpRemoteStore(RemoteStore):
    """``RemoteStore`` over HTTPS with a bearer token.

    Args:
        base_url: API root, e.g. ``https://api.example.com/api/v1``.
        token: Bearer token identifying the acting user.
        timeout: Per-request timeout in seconds.
        session: Optional ``requests.Session`` (tests pass a mock).
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        token: Optional[str] = None,
        timeout: float = 30.0,
        session: Any = None,
    ) -> None:
        import requests

        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        if token:
            self._session.headers.update({"Authorization": f"Bearer {token}"})

    def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
        allow_404: bool = False,
    ) -> Any:
        """Send one request and return the decoded JSON body.

        Returns:
            Parsed JSON, ``None`` for an empty body, or ``None`` on 404
            when ``allow_404`` is set.

        Raises:
            NetworkFailure: Connection error or timeout.
            RemoteError: Any other error status.
        """
        import requests

        url = f"{self.base_url}{path}"
        try:
            resp = self._session.request(
                method, url, json=json, params=params, timeout=self.timeout,
            )
        except requests.Timeout as exc:
            logger.warning("%s %s timed out after %ss", method, path, self.timeout)
            raise NetworkFailure(f"Request to {path} timed out") from exc
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise NetworkFailure(f"Could not reach {self.base_url}") from exc

        if resp.status_code == 404 and allow_404:
            return None
        if resp.status_code >= 400:
            message = _error_message(resp)
            logger.debug("%s %s -> %s %s", method, path, resp.status_code, message)
            raise RemoteError(message, resp.status_code)

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            return None

    # -- identity ----------------------------------------------------------

    def get_my_public_key(self) -> Optional[str]:
        body = self._request("GET", "/users/key") or {}
        return body.get("publicKey")

    def upload_public_key(self, public_key: str) -> None:
        self._request("POST", "/users/key", json={"publicKey": public_key})

    def download_backup(self) -> Optional[RecoveryBackup]:
        body = self._request("GET", "/users/backup", allow_404=True)
        if not body:
            return None
        return RecoveryBackup.model_validate(body)

    def upload_backup(self, backup: RecoveryBackup) -> None:
        self._request("POST", "/users/backup", json=backup.to_wire())

    def lookup_user(self, email: str) -> Optional[UserRecord]:
        body = self._request("GET", "/users/lookup", params={"email": email}, allow_404=True)
        if not body:
            return None
        return UserRecord.model_validate(body)

    # -- project keys ------------------------------------------------------

    def get_project_key(self, project_id: str) -> Optional[str]:
        body = self._request("GET", f"/projects/{project_id}/members/key") or {}
        return body.get("encryptedKey")

    def init_project_key(self, project_id: str, encrypted_key: str) -> None:
        self._request(
            "POST", f"/projects/{project_id}/members/key",
            json={"encryptedKey": encrypted_key},
        )

    def update_member_key(self, project_id: str, user_id: str, encrypted_key: str) -> None:
        self._request(
            "PATCH", f"/projects/{project_id}/members/{user_id}/key",
            json={"encryptedKey": encrypted_key},
        )

    def list_members(self, project_id: str) -> list[ProjectMember]:
        body = self._request("GET", f"/projects/{project_id}/members") or []
        return [ProjectMember.model_validate(m) for m in body]

    # -- environments and variables ----------------------------------------

    def list_environments(self, project_id: str) -> list[Environment]:
        body = self._request("GET", f"/projects/{project_id}/environments") or []
        return [Environment.model_validate(e) for e in body]

    def list_variables(self, project_id: str, env_id: str) -> list[EncryptedSecret]:
        body = self._request(
            "GET", f"/projects/{project_id}/environments/{env_id}/variables",
        ) or []
        return [EncryptedSecret.model_validate(v) for v in body]

    def push_batch(self, project_id: str, env_id: str, changes: BatchChanges) -> BatchResult:
        body = self._request(
            "POST", f"/projects/{project_id}/environments/{env_id}/variables/batch",
            json=changes.to_wire(),
        )
        return BatchResult.model_validate(body or {})

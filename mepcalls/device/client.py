"""HTTP client for the mepcalls backend, as used from the device."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

import requests
from jose import JWTError, jwt

from mepcalls.device.exceptions import AuthenticationError, IngestError
from mepcalls.device.models import CallRecord, DeviceSession

logger = logging.getLogger(__name__)


class _HTTPClient:
    """Small wrapper to make requests session injectable."""

    def __init__(self, session: Optional[requests.Session] = None) -> None:
        self._session = session or requests.Session()

    def request(self, *args, **kwargs) -> requests.Response:
        return self._session.request(*args, **kwargs)


def token_expiry(token: str) -> Optional[datetime]:
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return None
    exp = claims.get("exp")
    return datetime.fromtimestamp(exp, tz=timezone.utc) if exp else None


class MepApiClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        http_client: Optional[requests.Session] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._http = _HTTPClient(http_client)

    def _headers(self, token: Optional[str]) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _request(self, method: str, path: str, token: Optional[str] = None, **kwargs: Any) -> requests.Response:
        url = f"{self._base_url}{path}"
        try:
            response = self._http.request(
                method, url, headers=self._headers(token), timeout=self._timeout, **kwargs
            )
        except requests.RequestException as exc:
            raise IngestError(f"{method} {path} failed: {exc}") from exc
        if response.status_code in (401, 403):
            raise AuthenticationError(f"{method} {path} rejected with {response.status_code}")
        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            raise IngestError(f"{method} {path} returned {response.status_code}") from exc
        return response

    @staticmethod
    def _json(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise IngestError(f"Invalid JSON from {response.url}") from exc

    @staticmethod
    def _field(payload: Any, key: str) -> Any:
        try:
            return payload[key]
        except (KeyError, TypeError, IndexError) as exc:
            raise IngestError(f"Response is missing \"{key}\"") from exc

    def login(self, phone: str, password: str) -> DeviceSession:
        payload = self._json(
            self._request("POST", "/auth/login", json={"phone": phone, "password": password})
        )
        token = self._field(payload, "access_token")
        me = self._json(self._request("GET", "/users/me", token=token))
        staff_id = self._field(me, "id")
        try:
            return DeviceSession(
                token=token,
                staff_id=staff_id,
                staff_name=me.get("name"),
                expires_at=token_expiry(token),
            )
        except ValueError as exc:
            raise IngestError(f"Unexpected login response for {phone}") from exc

    def send_call_logs(self, records: Iterable[CallRecord], session: DeviceSession) -> dict[str, Any]:
        """Upload a batch; returns only once the backend acknowledged all of it."""
        body = [record.to_payload() for record in records]
        result = self._json(self._request("POST", "/call-logs", token=session.token, json=body))
        logger.debug("Backend acknowledged %s call(s): %s", len(body), result)
        return result

    def get_sync_interval(self, session: DeviceSession) -> str:
        payload = self._json(self._request("GET", "/settings/sync-interval", token=session.token))
        return str(self._field(payload, "value"))

    def send_heartbeat(self, session: DeviceSession, syncing: bool = False) -> None:
        self._request("POST", "/heartbeat", token=session.token, json={"syncing": syncing})

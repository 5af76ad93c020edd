"""Remote Store adapter for Supabase (PostgREST tables + GoTrue auth) over ``requests``.

Table calls hit ``{url}/rest/v1/{table}`` with PostgREST filter encoding
(``column=op.value``). Auth calls hit ``{url}/auth/v1/token`` and always use
a fixed timeout; data calls use ``request_timeout`` (``None`` by default).

Failures never raise out of the table calls. HTTP errors and transport
errors come back as ``Response(error=..., status=...)``; a transport error
has ``status=0``.
"""

from __future__ import annotations

import json
import os
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import requests

from .errors import AuthenticationError
from .logging_setup import get_logger
from .models import AuthSession
from .remote import Filter, Order, Response, Row

_logger = get_logger("fnzo.rest_store")

_RESERVED = set(',()"')


def _literal(value: Any) -> str:
    if value is True:
        return "true"
    if value is False:
        return "false"
    return str(value)


def _list_item(value: Any) -> str:
    s = _literal(value)
    if any(ch in _RESERVED for ch in s):
        return '"' + s.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return s


def encode_filter(f: Filter) -> tuple[str, str]:
    """PostgREST query parameter for ``f``."""

    if f.op == "eq" and f.value is None:
        return f.column, "is.null"
    if f.op == "in":
        return f.column, "in.(" + ",".join(_list_item(v) for v in f.value) + ")"
    return f.column, f"{f.op}.{_literal(f.value)}"


def _retry_after(resp: requests.Response) -> float | None:
    raw = resp.headers.get("Retry-After")
    if raw is None:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if value >= 0 else None


def _error_body(resp: requests.Response) -> tuple[str | None, str | None]:
    try:
        body = resp.json()
    except ValueError:
        text = resp.text.strip()
        return (text or None), None
    if isinstance(body, dict):
        message = body.get("message") or body.get("error_description") or body.get("msg") or body.get("error")
        code = body.get("code")
        return (str(message) if message else None), (str(code) if code is not None else None)
    return None, None


def _to_response(resp: requests.Response) -> Response:
    if resp.status_code >= 400:
        message, code = _error_body(resp)
        if resp.status_code == 429:
            message = message or "Too Many Requests"
        return Response(
            error=message or f"HTTP {resp.status_code}",
            status=resp.status_code,
            code=code,
            retry_after=_retry_after(resp),
        )
    if not resp.content:
        return Response(data=None, status=resp.status_code)
    try:
        data = resp.json()
    except ValueError as e:
        return Response(error=f"Unreadable response body: {e}", status=resp.status_code)
    return Response(data=data, status=resp.status_code)


class RestStore:
    """``RemoteStore`` implementation over the Supabase HTTP APIs."""

    def __init__(
        self,
        url: str,
        anon_key: str,
        *,
        session_file: str | os.PathLike[str] | None = None,
        auth_timeout: float = 10.0,
        request_timeout: float | None = None,
        http: requests.Session | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self._session_file = Path(session_file) if session_file else None
        self._auth_timeout = auth_timeout
        self._request_timeout = request_timeout
        self._http = http or requests.Session()
        self._clock = clock
        self._auth: AuthSession | None = None
        self._loaded = False

    # ---- session persistence ----------------------------------------------

    def _load_session(self) -> None:
        self._loaded = True
        if self._session_file is None or not self._session_file.exists():
            return
        try:
            data = json.loads(self._session_file.read_text(encoding="utf-8"))
            self._auth = AuthSession.model_validate(data)
        except (OSError, ValueError) as e:
            _logger.warning("rest_store:session_file_unreadable path=%s error=%s", self._session_file, e)

    def _store_session(self, session: AuthSession | None) -> None:
        self._auth = session
        self._loaded = True
        if self._session_file is None:
            return
        if session is None:
            self._session_file.unlink(missing_ok=True)
            return
        self._session_file.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._session_file.with_suffix(self._session_file.suffix + ".tmp")
        tmp.write_text(session.model_dump_json(), encoding="utf-8")
        os.replace(tmp, self._session_file)

    # ---- HTTP plumbing ----------------------------------------------------

    def _headers(self, *, write: bool = False) -> dict[str, str]:
        session = self.get_session()
        token = session.access_token if session is not None else self.anon_key
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        if write:
            headers["Prefer"] = "return=representation"
        return headers

    def _table_url(self, table: str) -> str:
        return f"{self.url}/rest/v1/{table}"

    def _send(self, method: str, table: str, **kwargs: Any) -> Response:
        try:
            resp = self._http.request(
                method,
                self._table_url(table),
                timeout=self._request_timeout,
                **kwargs,
            )
        except requests.RequestException as e:
            _logger.warning("rest_store:transport_error op=%s:%s error=%s", method, table, e)
            return Response(error=str(e), status=0)
        return _to_response(resp)

    # ---- RemoteStore ------------------------------------------------------

    def select(self, table: str, *filters: Filter, order: Order | None = None) -> Response:
        params: list[tuple[str, str]] = [("select", "*")]
        params.extend(encode_filter(f) for f in filters)
        if order is not None:
            params.append(("order", f"{order.column}.{'asc' if order.ascending else 'desc'}"))
        return self._send("GET", table, params=params, headers=self._headers())

    def insert(self, table: str, row: Row | list[Row]) -> Response:
        # A list is sent as one array body, which PostgREST inserts atomically
        return self._send("POST", table, json=row, headers=self._headers(write=True))

    def update(self, table: str, filters: list[Filter], patch: Row) -> Response:
        params = [encode_filter(f) for f in filters]
        return self._send(
            "PATCH", table, params=params, json=patch, headers=self._headers(write=True)
        )

    def delete(self, table: str, filters: list[Filter]) -> Response:
        params = [encode_filter(f) for f in filters]
        return self._send("DELETE", table, params=params, headers=self._headers(write=True))

    # ---- auth -------------------------------------------------------------

    def _token_request(self, grant_type: str, body: dict[str, str]) -> requests.Response:
        return self._http.post(
            f"{self.url}/auth/v1/token",
            params={"grant_type": grant_type},
            json=body,
            headers={"apikey": self.anon_key, "Content-Type": "application/json"},
            timeout=self._auth_timeout,
        )

    def _parse_token(self, body: dict[str, Any]) -> AuthSession:
        expires_at = body.get("expires_at")
        if expires_at is None and body.get("expires_in") is not None:
            expires_at = self._clock() + float(body["expires_in"])
        user = body.get("user") or {}
        user_id = user.get("id") or body.get("user_id")
        if not user_id:
            raise KeyError("user id")
        return AuthSession(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token"),
            expires_at=float(expires_at) if expires_at is not None else None,
            user_id=str(user_id),
        )

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        """Password sign-in; raises ``AuthenticationError`` on any failure."""

        try:
            resp = self._token_request("password", {"email": email, "password": password})
        except requests.RequestException as e:
            raise AuthenticationError(f"Sign-in failed: {e}") from e
        if resp.status_code >= 400:
            message, _code = _error_body(resp)
            raise AuthenticationError(f"Sign-in failed: {message or resp.status_code}")
        try:
            session = self._parse_token(resp.json())
        except (KeyError, ValueError) as e:
            raise AuthenticationError(f"Sign-in returned an unexpected payload: {e}") from e
        self._store_session(session)
        _logger.info("auth:signed_in user_id=%s", session.user_id)
        return session

    def sign_out(self) -> None:
        self._store_session(None)

    def get_session(self) -> AuthSession | None:
        if not self._loaded:
            self._load_session()
        return self._auth

    def refresh_session(self) -> AuthSession | None:
        current = self.get_session()
        if current is None or not current.refresh_token:
            return None
        try:
            resp = self._token_request("refresh_token", {"refresh_token": current.refresh_token})
        except requests.RequestException as e:
            _logger.warning("auth:refresh_transport_error error=%s", e)
            return None
        if resp.status_code >= 400:
            message, _code = _error_body(resp)
            _logger.warning("auth:refresh_rejected status=%d error=%s", resp.status_code, message)
            self._store_session(None)
            return None
        try:
            session = self._parse_token(resp.json())
        except (KeyError, ValueError) as e:
            _logger.warning("auth:refresh_bad_payload error=%s", e)
            return None
        self._store_session(session)
        return session


__all__ = ["RestStore", "encode_filter"]

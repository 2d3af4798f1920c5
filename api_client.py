# api_client.py
# -----------------------------------------------------------------------------
# Thin JSON-over-HTTP client for the course backend REST API.
# - Bearer token pulled from the caller (session) on every request
# - Backend error bodies surface as BackendError(message, status)
# - Response-shape unwrapping (bare list vs {"courses": [...]} vs {"data": ...})
#   lives here so pages never branch on payload shapes
# -----------------------------------------------------------------------------

import os
import json
import urllib.request
import urllib.error
from urllib.parse import urlencode, quote
from typing import Any, Callable, Dict, List, Optional

BACKEND_API_URL = (os.getenv("BACKEND_API_URL", "http://localhost:3000/api") or "").rstrip("/")
BACKEND_TIMEOUT_SEC = float(os.getenv("BACKEND_TIMEOUT_SEC") or 15)

UNKNOWN_COURSE = "Unknown Course"


class BackendError(RuntimeError):
    """Raised when the backend answers with a non-2xx status or cannot be reached."""

    def __init__(self, message: str, status: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.payload = payload

    @property
    def not_found(self) -> bool:
        return self.status == 404


def _error_message(payload: Any, fallback: str) -> str:
    if isinstance(payload, dict):
        for key in ("message", "error", "detail"):
            val = payload.get(key)
            if isinstance(val, str) and val.strip():
                return val.strip()
            if isinstance(val, dict) and isinstance(val.get("message"), str):
                return val["message"]
    return fallback


class BackendClient:
    def __init__(
        self,
        base_url: str = BACKEND_API_URL,
        token_getter: Optional[Callable[[], Optional[str]]] = None,
        timeout: float = BACKEND_TIMEOUT_SEC,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.token_getter = token_getter
        self.timeout = timeout

    def url_for(self, path: str, params: Optional[Dict[str, Any]] = None) -> str:
        p = path if path.startswith("/") else "/" + path
        url = self.base_url + p
        if params:
            clean = {k: v for k, v in params.items() if v is not None and v != ""}
            if clean:
                url += "?" + urlencode(clean)
        return url

    def request(
        self,
        method: str,
        path: str,
        body: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
        fallback: str = "Request failed",
    ) -> Any:
        url = self.url_for(path, params)
        data = json.dumps(body).encode("utf-8") if body is not None else None
        req = urllib.request.Request(url, data=data, method=method.upper())
        req.add_header("Accept", "application/json")
        if data is not None:
            req.add_header("Content-Type", "application/json")
        token = self.token_getter() if self.token_getter else None
        if token:
            req.add_header("Authorization", f"Bearer {token}")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                raw = resp.read().decode("utf-8")
                return json.loads(raw) if raw else {}
        except urllib.error.HTTPError as e:
            try:
                err_json = json.loads(e.read().decode("utf-8") or "{}")
            except ValueError:
                err_json = {}
            msg = _error_message(err_json, fallback)
            print(f"[api] {method.upper()} {path} -> HTTP {e.code}: {msg}")
            raise BackendError(msg, status=e.code, payload=err_json) from None
        except (urllib.error.URLError, OSError, ValueError) as e:
            print(f"[api] {method.upper()} {path} failed: {e}")
            raise BackendError(fallback) from None

    def get(self, path: str, params: Optional[Dict[str, Any]] = None, fallback: str = "Request failed") -> Any:
        return self.request("GET", path, params=params, fallback=fallback)

    def post(self, path: str, body: Optional[Any] = None, fallback: str = "Request failed") -> Any:
        return self.request("POST", path, body=body if body is not None else {}, fallback=fallback)

    def put(self, path: str, body: Optional[Any] = None, fallback: str = "Request failed") -> Any:
        return self.request("PUT", path, body=body if body is not None else {}, fallback=fallback)

    def delete(self, path: str, fallback: str = "Request failed") -> Any:
        return self.request("DELETE", path, fallback=fallback)


# ------------------------------ shape helpers --------------------------------
def unwrap_list(payload: Any, *keys: str) -> List[Dict[str, Any]]:
    """Accepts a bare list, or a dict holding the list under one of `keys` or 'data'."""
    if isinstance(payload, list):
        return [x for x in payload if isinstance(x, dict)]
    if isinstance(payload, dict):
        for key in tuple(keys) + ("data",):
            val = payload.get(key)
            if isinstance(val, list):
                return [x for x in val if isinstance(x, dict)]
            if isinstance(val, dict) and key == "data":
                inner = unwrap_list(val, *keys)
                if inner:
                    return inner
    return []


def unwrap_item(payload: Any, *keys: str) -> Optional[Dict[str, Any]]:
    if not isinstance(payload, dict):
        return None
    for key in tuple(keys) + ("data",):
        val = payload.get(key)
        if isinstance(val, dict):
            return val
    return payload or None


def ref_id(value: Any) -> Optional[str]:
    """Id of a reference that may be a plain id string or a populated object."""
    if value is None:
        return None
    if isinstance(value, dict):
        v = value.get("_id") or value.get("id")
        return str(v) if v else None
    s = str(value).strip()
    return s or None


def ref_title(value: Any, lookup: Optional[Dict[str, str]] = None, default: str = UNKNOWN_COURSE) -> str:
    if isinstance(value, dict):
        for key in ("title", "name", "fullName"):
            if value.get(key):
                return str(value[key])
    rid = ref_id(value)
    if rid and lookup and lookup.get(rid):
        return lookup[rid]
    return default


def path_id(value: Any) -> str:
    return quote(str(ref_id(value) or ""), safe="")


__all__ = [
    "BACKEND_API_URL",
    "BACKEND_TIMEOUT_SEC",
    "BackendClient",
    "BackendError",
    "UNKNOWN_COURSE",
    "path_id",
    "ref_id",
    "ref_title",
    "unwrap_item",
    "unwrap_list",
]

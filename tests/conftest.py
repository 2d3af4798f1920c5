import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from api_client import BackendError  # noqa: E402
from services import build_services  # noqa: E402


class FakeBackend:
    """Stands in for BackendClient: canned responses keyed by (METHOD, path), every call recorded."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def request(self, method, path, body=None, params=None, fallback="Request failed"):
        key = (method.upper(), path)
        self.calls.append({"method": key[0], "path": path, "body": body, "params": params})
        if key not in self.routes:
            raise BackendError(fallback, status=404)
        resp = self.routes[key]
        if isinstance(resp, Exception):
            raise resp
        if callable(resp):
            return resp(body)
        return resp

    def calls_to(self, method, path):
        return [c for c in self.calls if c["method"] == method and c["path"] == path]


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def services(backend):
    return build_services(backend)

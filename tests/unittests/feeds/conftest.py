import json
from typing import Any, Optional

import pytest


class FakeResponse:
    def __init__(self, status: int = 200, body: bytes = b"", json_data: Any = None):
        self.status = status
        self.body = body
        self.json_data = json_data

    async def read(self) -> bytes:
        return self.body

    async def json(self) -> Any:
        if self.json_data is None and self.body:
            return json.loads(self.body)
        return self.json_data


class FakeRequest:
    def __init__(self, response: Optional[FakeResponse], error: Optional[BaseException]):
        self.response = response
        self.error = error

    async def __aenter__(self):
        if self.error is not None:
            raise self.error
        return self.response

    async def __aexit__(self, *exc_info):
        return False


class FakeSession:
    """Records calls; answers every request with ``response`` or raises ``error``."""

    def __init__(self, response: Optional[FakeResponse] = None, error: Optional[BaseException] = None):
        self.response = response or FakeResponse()
        self.error = error
        self.calls: list[tuple[str, str, dict]] = []

    def get(self, url, **kwargs):
        self.calls.append(("GET", url, kwargs))
        return FakeRequest(self.response, self.error)

    def post(self, url, **kwargs):
        self.calls.append(("POST", url, kwargs))
        return FakeRequest(self.response, self.error)

    def provider(self):
        return self


@pytest.fixture
def http_session():
    return FakeSession()

import fnmatch
import json
from typing import Any, Dict, List, Optional

import httpx
import pytest


class FakeRedis:
    """In-memory stand-in for the few async Redis commands the app uses."""

    def __init__(self):
        self.store: Dict[str, Any] = {}
        self.ttls: Dict[str, int] = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        if ex is not None:
            self.ttls[key] = ex
        else:
            self.ttls.pop(key, None)
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if key in self.store:
                removed += 1
            self.store.pop(key, None)
            self.ttls.pop(key, None)
        return removed

    async def incr(self, key):
        self.store[key] = int(self.store.get(key, 0)) + 1
        return self.store[key]

    async def expire(self, key, seconds):
        self.ttls[key] = seconds
        return True

    async def ttl(self, key):
        if key not in self.store:
            return -2
        return self.ttls.get(key, -1)

    async def scan_iter(self, match=None):
        for key in list(self.store):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def aclose(self):
        pass


class SleepRecorder:
    """Replaces asyncio.sleep; records requested delays without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def json_response(status: int = 200, body: Optional[Any] = None, headers: Optional[dict] = None) -> httpx.Response:
    return httpx.Response(status, content=json.dumps(body if body is not None else {}), headers={
        "content-type": "application/json",
        **(headers or {}),
    })


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def sleeps():
    return SleepRecorder()

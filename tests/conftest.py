import json

import pytest

from gql_intel.errors import AssetFetchError
from gql_intel.probers.events import RequestEvent, ResponseEvent, static_body
from gql_intel.utils.channel import Channel


class FakeSource:
    """In-memory EventSource: queues its events on start, then ends the streams."""

    def __init__(self, events=(), alive=True, error=None, finish=True):
        self.requests = Channel(100)
        self.responses = Channel(100)
        self.error = error
        self.alive = alive
        self.finish = finish
        self.closed = False
        self.started_with = None
        self._events = list(events)

    async def start(self, target):
        self.started_with = target
        for event in self._events:
            if isinstance(event, RequestEvent):
                await self.requests.send(event)
            else:
                await self.responses.send(event)
        if self.finish:
            self.requests.close()
            self.responses.close()

    async def is_alive(self):
        return self.alive and not self.closed

    async def close(self):
        self.closed = True
        self.requests.close()
        self.responses.close()


class FakeFetcher:
    def __init__(self, assets=None):
        self.assets = assets or {}
        self.calls = []

    def fetch(self, url):
        self.calls.append(url)
        if url not in self.assets:
            raise AssetFetchError(url, "404 Not Found")
        return self.assets[url]

    def close(self):
        pass


def graphql_exchange(request_id, query, variables=None, response=None, url="https://api.example.com/graphql"):
    """Request/response pair for one POSTed GraphQL operation."""
    payload = {"query": query}
    if variables is not None:
        payload["variables"] = variables
    request = RequestEvent(
        request_id=request_id,
        url=url,
        headers={"Content-Type": "application/json"},
        body=json.dumps(payload),
        method="POST",
    )
    body = json.dumps(response) if response is not None else ""
    reply = ResponseEvent(
        request_id=request_id,
        url=url,
        fetch_body=static_body(body),
        mime_type="application/json",
        status=200,
    )
    return [request, reply]


def script_exchange(request_id, url):
    request = RequestEvent(request_id=request_id, url=url)
    reply = ResponseEvent(
        request_id=request_id,
        url=url,
        fetch_body=static_body(""),
        mime_type="application/javascript",
        status=200,
    )
    return [request, reply]


@pytest.fixture
def engine_settings(tmp_path):
    return {
        "capture": {
            "timeout": 30,
            "progress_interval": 0,
            "liveness_interval": 0,
            "shutdown_grace": 2,
        },
        "output": {"dir": str(tmp_path / "output")},
    }

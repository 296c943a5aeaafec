import asyncio
import base64
import json

import pytest
from conftest import FakeFetcher

from gql_intel.engine import STREAM_CLOSED, CaptureEngine
from gql_intel.errors import EventSourceError
from gql_intel.probers.har_replay import HarEventSource, load_har_entries

QUERY = "query Viewer { viewer { login } }"


def har_entry(url, method="GET", post_text=None, mime="application/json", text="", encoding=None):
    request = {"method": method, "url": url, "headers": [{"name": "Content-Type", "value": mime}]}
    if post_text is not None:
        request["postData"] = {"mimeType": "application/json", "text": post_text}
    content = {"mimeType": mime, "text": text}
    if encoding:
        content["encoding"] = encoding
    return {"request": request, "response": {"status": 200, "content": content}}


def write_har(path, entries):
    path.write_text(json.dumps({"log": {"version": "1.2", "entries": entries}}), encoding="utf-8")
    return path


def test_load_rejects_non_har(tmp_path):
    bad = tmp_path / "bad.har"
    bad.write_text('{"entries": []}', encoding="utf-8")

    with pytest.raises(EventSourceError):
        load_har_entries(bad)
    with pytest.raises(EventSourceError):
        load_har_entries(tmp_path / "missing.har")


def test_replay_emits_request_then_response(tmp_path):
    body = base64.b64encode(b'{"data": {"viewer": {"login": "me"}}}').decode("ascii")
    har = write_har(tmp_path / "s.har", [
        har_entry("https://x.io/graphql", "POST", json.dumps({"query": QUERY}), text=body, encoding="base64"),
    ])

    async def scenario():
        source = HarEventSource(har)
        await source.start()
        request = await source.requests.recv()
        response = await source.responses.recv()
        text = await response.fetch_body()
        end = (await source.requests.recv(), await source.responses.recv())
        await source.close()
        return source, request, response, text, end

    source, request, response, text, end = asyncio.run(scenario())

    assert request.request_id == response.request_id == "har-0"
    assert request.method == "POST"
    assert request.headers == {"Content-Type": "application/json"}
    assert json.loads(request.body) == {"query": QUERY}
    assert response.status == 200
    assert json.loads(text) == {"data": {"viewer": {"login": "me"}}}
    assert end == (None, None)
    assert source.entries_replayed == 1


def test_engine_over_har_replay(tmp_path):
    har = write_har(tmp_path / "session.har", [
        har_entry("https://x.io/static/app.js", mime="application/javascript", text="ignored"),
        har_entry(
            "https://x.io/graphql", "POST", json.dumps({"query": QUERY}),
            text=json.dumps({"data": {"viewer": {"login": "me"}}}),
        ),
    ])
    settings = {
        "capture": {"progress_interval": 0, "liveness_interval": 0.01},
        "output": {"dir": str(tmp_path / "out")},
    }
    fetcher = FakeFetcher({"https://x.io/static/app.js": "gql`mutation Logout { logout { ok } }`"})
    engine = CaptureEngine(settings, fetcher=fetcher)

    result = asyncio.run(engine.run(HarEventSource(har), "session.har"))

    assert result.terminated_by == STREAM_CLOSED
    assert sorted(op.name for op in result.operations) == ["Logout", "Viewer"]
    assert len(result.captures) == 2
    assert (tmp_path / "out" / "graphql_operations_session.har.json").exists()


def test_har_error_entry_becomes_failure(tmp_path):
    entry = har_entry("https://x.io/graphql", "POST", json.dumps({"query": QUERY}))
    entry["response"] = {"status": 0, "content": {}, "_error": "net::ERR_CONNECTION_RESET"}
    har = write_har(tmp_path / "s.har", [entry])

    async def scenario():
        source = HarEventSource(har)
        await source.start()
        response = await source.responses.recv()
        await source.close()
        return response

    response = asyncio.run(scenario())

    assert response.failure == "net::ERR_CONNECTION_RESET"

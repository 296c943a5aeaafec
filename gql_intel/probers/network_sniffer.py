"""
Network Sniffer - GraphQL traffic correlation
Matches in-flight requests to their responses, detects GraphQL calls,
emits Capture records and forwards JavaScript asset URLs
"""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urlparse

from gql_intel.models.operation_schema import Capture
from gql_intel.probers.events import RequestEvent, ResponseEvent
from gql_intel.utils.channel import ChannelClosed
from gql_intel.utils.logger import get_logger

logger = get_logger(__name__)

URL_MARKER = "graphql"
CONTENT_TYPE_MARKER = "application/graphql"
BODY_KEYWORDS = ("query", "mutation")
SCRIPT_EXTENSIONS = (".js", ".mjs")
# script responses at or above this status are not forwarded for download
ERROR_STATUS = 400


@dataclass
class GraphQLPayload:
    """One operation sent in a request (batched requests carry several)."""
    query: str
    variables: Dict[str, Any] = field(default_factory=dict)
    operation_name: Optional[str] = None


@dataclass
class PendingRequest:
    event: RequestEvent
    relevant: bool
    payloads: List[GraphQLPayload] = field(default_factory=list)


def _header(headers: Dict[str, str], name: str) -> str:
    name = name.lower()
    for key, value in (headers or {}).items():
        if str(key).lower() == name:
            return str(value)
    return ""


def is_graphql_request(event: RequestEvent) -> bool:
    """URL marker, GraphQL media type, or an operation keyword in the body."""
    if URL_MARKER in (event.url or "").lower():
        return True
    if CONTENT_TYPE_MARKER in _header(event.headers, "content-type").lower():
        return True
    if event.body:
        return any(keyword in event.body for keyword in BODY_KEYWORDS)
    return False


def is_script_asset(event: ResponseEvent) -> bool:
    path = urlparse(event.url or "").path.lower()
    if path.endswith(SCRIPT_EXTENSIONS):
        return True
    return "javascript" in (event.mime_type or "").lower()


def _decode_variables(value) -> Dict[str, Any]:
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value.strip():
        try:
            decoded = json.loads(value)
        except ValueError:
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return {}


def _payload_from_mapping(data: Dict[str, Any]) -> GraphQLPayload:
    query = data.get("query")
    name = data.get("operationName")
    return GraphQLPayload(
        query=query if isinstance(query, str) else "",
        variables=_decode_variables(data.get("variables")),
        operation_name=name if isinstance(name, str) else None,
    )


def parse_request_payloads(event: RequestEvent) -> List[GraphQLPayload]:
    """
    Recover the GraphQL payload(s) a request carries.

    - JSON object body: {"query", "variables", "operationName"}
    - JSON array body: batched operations, one payload each
    - other body text: the raw text is the query, variables left empty
    - no body on a GET: payload in the query string
    """
    body = event.body
    if body:
        try:
            data = json.loads(body)
        except ValueError:
            return [GraphQLPayload(query=body.strip())]
        if isinstance(data, dict):
            return [_payload_from_mapping(data)]
        if isinstance(data, list):
            return [_payload_from_mapping(item) for item in data if isinstance(item, dict)]
        return []

    if (event.method or "GET").upper() != "GET":
        return []
    params = parse_qs(urlparse(event.url or "").query)
    if "query" not in params:
        return []
    return [
        _payload_from_mapping({
            "query": params["query"][0],
            "variables": params.get("variables", [""])[0],
            "operationName": params.get("operationName", [None])[0],
        })
    ]


class NetworkCorrelator:
    """
    Consumes request/response event streams and emits captures.

    Every request is tracked from the moment it is seen until a response
    references its id; the entry is dropped on resolution whether or not a
    capture was emitted, so the table only holds in-flight requests.
    """

    def __init__(self, asset_urls, captures, progress=None):
        self.asset_urls = asset_urls
        self.captures = captures
        self.progress = progress
        self.pending: Dict[str, PendingRequest] = {}
        self.done = asyncio.Event()
        self.malformed_events = 0

    @property
    def pending_count(self) -> int:
        return len(self.pending)

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    async def handle_request(self, event: RequestEvent) -> None:
        relevant = is_graphql_request(event)
        payloads = parse_request_payloads(event) if relevant else []
        self.pending[event.request_id] = PendingRequest(event=event, relevant=relevant, payloads=payloads)

        for payload in payloads:
            if payload.query:
                await self._emit(payload, event.url, response=None)

    async def handle_response(self, event: ResponseEvent) -> None:
        if event.failure:
            if self.pending.pop(event.request_id, None) is not None:
                logger.debug(f"Request failed for {event.url}: {event.failure}")
            return

        if is_script_asset(event) and (event.status or 0) < ERROR_STATUS:
            if self.progress is not None:
                self.progress.add_asset(event.url)
            await self.asset_urls.send(event.url)

        entry = self.pending.pop(event.request_id, None)
        if entry is None or not entry.relevant:
            return
        payloads = [p for p in entry.payloads if p.query]
        if not payloads:
            return

        response = await self._fetch_json(event)
        if response is None:
            return

        if len(entry.payloads) > 1 and isinstance(response, list) and len(response) == len(entry.payloads):
            for payload, item in zip(entry.payloads, response):
                if payload.query and item is not None:
                    await self._emit(payload, event.url, response=item)
        else:
            for payload in payloads:
                await self._emit(payload, event.url, response=response)

    async def _fetch_json(self, event: ResponseEvent) -> Optional[Any]:
        try:
            body = await event.fetch_body()
        except Exception as e:
            logger.debug(f"Failed to fetch response body for {event.url}: {e}")
            return None
        if not body:
            return None
        try:
            return json.loads(body)
        except ValueError as e:
            logger.debug(f"Non-JSON response from {event.url}: {e}")
            return None

    async def _emit(self, payload: GraphQLPayload, url: str, response: Optional[Any]) -> None:
        capture = Capture(
            query=payload.query,
            variables=payload.variables,
            response=response,
            timestamp=datetime.now(timezone.utc),
            source_url=url or "",
            operation_name=payload.operation_name,
        )
        if self.progress is not None:
            self.progress.record_capture()
        await self.captures.send(capture)

    # ------------------------------------------------------------------
    # Stream loop
    # ------------------------------------------------------------------

    async def _dispatch(self, channel_name: str, event) -> None:
        try:
            if channel_name == "requests":
                await self.handle_request(event)
            else:
                await self.handle_response(event)
        except (asyncio.CancelledError, ChannelClosed):
            raise
        except Exception as e:
            self.malformed_events += 1
            logger.warning(f"Skipping malformed {channel_name[:-1]} event: {e}")

    async def run(self, source) -> None:
        """
        Drain both source channels until each is closed, then close the outputs.

        When a request and a response are ready together the request is
        handled first, so a response never overtakes its own request.
        """
        channels = {"requests": source.requests, "responses": source.responses}
        waiting = {
            asyncio.ensure_future(channel.recv()): name
            for name, channel in channels.items()
        }
        logger.info("Started capturing network traffic.")
        try:
            while waiting:
                done, _ = await asyncio.wait(waiting, return_when=asyncio.FIRST_COMPLETED)
                for task in sorted(done, key=lambda t: waiting[t] != "requests"):
                    name = waiting.pop(task)
                    event = task.result()
                    if event is None:
                        logger.debug(f"Event channel {name} closed")
                        continue
                    await self._dispatch(name, event)
                    waiting[asyncio.ensure_future(channels[name].recv())] = name
        except ChannelClosed:
            logger.warning("Output channel closed before the event stream ended")
        finally:
            for task in waiting:
                task.cancel()
            self.asset_urls.close()
            self.captures.close()
            self.done.set()
            logger.info(
                f"Network capture stopped ({self.pending_count} requests still in flight, "
                f"{self.malformed_events} malformed events skipped)"
            )

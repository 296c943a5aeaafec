"""
HAR Replay - recorded browser traffic as a network event source

Replays the entries of a HAR file (as written by Playwright's
record_har_path or a browser's "Save all as HAR") in recorded order:
each entry becomes a request event followed by its response event.
"""

import asyncio
import base64
import binascii
import json
from pathlib import Path
from typing import Dict, List, Optional

from gql_intel.errors import EventSourceError
from gql_intel.probers.events import RequestEvent, ResponseEvent, static_body
from gql_intel.utils.channel import Channel, ChannelClosed
from gql_intel.utils.logger import get_logger

logger = get_logger(__name__)


def _headers(items) -> Dict[str, str]:
    headers = {}
    for item in items or []:
        if isinstance(item, dict) and "name" in item:
            headers[str(item["name"])] = str(item.get("value", ""))
    return headers


def _response_text(content: dict) -> str:
    text = content.get("text") or ""
    if text and content.get("encoding") == "base64":
        try:
            return base64.b64decode(text).decode("utf-8", errors="ignore")
        except (binascii.Error, ValueError):
            return ""
    return text


def load_har_entries(path) -> List[dict]:
    """
    Read `log.entries` from a HAR file.

    Raises:
        EventSourceError: the file is missing or not a HAR document
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            har = json.load(f)
    except (OSError, ValueError) as e:
        raise EventSourceError(f"cannot read HAR file {path}: {e}") from e
    entries = har.get("log", {}).get("entries") if isinstance(har, dict) else None
    if not isinstance(entries, list):
        raise EventSourceError(f"{path} has no log.entries")
    return entries


class HarEventSource:
    """EventSource replaying a HAR file; channels close when the replay ends."""

    def __init__(self, har_path, channel_size: int = 100):
        self.har_path = Path(har_path)
        self.requests = Channel(channel_size)
        self.responses = Channel(channel_size)
        self.error: Optional[BaseException] = None
        self.entries_replayed = 0
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    async def start(self, url: Optional[str] = None) -> None:
        entries = load_har_entries(self.har_path)
        logger.info(f"Replaying {len(entries)} HAR entries from {self.har_path}")
        self._task = asyncio.create_task(self._replay(entries))

    async def _replay(self, entries: List[dict]) -> None:
        try:
            for index, entry in enumerate(entries):
                request = entry.get("request") or {}
                response = entry.get("response") or {}
                request_id = f"har-{index}"
                post_data = request.get("postData") or {}

                await self.requests.send(RequestEvent(
                    request_id=request_id,
                    url=request.get("url", ""),
                    headers=_headers(request.get("headers")),
                    body=post_data.get("text"),
                    method=request.get("method", "GET"),
                ))

                content = response.get("content") or {}
                await self.responses.send(ResponseEvent(
                    request_id=request_id,
                    url=request.get("url", ""),
                    fetch_body=static_body(_response_text(content)),
                    mime_type=content.get("mimeType"),
                    status=response.get("status") or 0,
                    failure=response.get("_error") or None,
                ))
                self.entries_replayed += 1
        except ChannelClosed:
            logger.debug("Replay stopped: channels closed")
        finally:
            self.requests.close()
            self.responses.close()
            logger.info(f"HAR replay finished ({self.entries_replayed} entries)")

    async def is_alive(self) -> bool:
        # A replay has no interactive session; the run ends when the streams close
        return not self._closed

    async def close(self) -> None:
        self._closed = True
        self.requests.close()
        self.responses.close()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

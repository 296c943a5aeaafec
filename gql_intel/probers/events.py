"""
Network event contract between event sources (browser, HAR replay) and the correlator
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Optional, Protocol

from gql_intel.utils.channel import Channel


@dataclass
class RequestEvent:
    """A request leaving the page."""
    request_id: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    method: str = "GET"


@dataclass
class ResponseEvent:
    """
    A response arriving for an earlier request. The body is fetched on demand.

    `failure` is set instead of a real response when the request was aborted
    or failed at the network level; it only resolves the pending request.
    """
    request_id: str
    url: str
    fetch_body: Callable[[], Awaitable[str]]
    mime_type: Optional[str] = None
    status: int = 0
    failure: Optional[str] = None


class EventSource(Protocol):
    """
    Two event streams plus a liveness probe.

    `requests` carries RequestEvent, `responses` carries ResponseEvent; both
    are closed by the source when it stops producing. `error` is set when the
    source failed rather than ended normally.
    """

    requests: Channel
    responses: Channel
    error: Optional[BaseException]

    async def is_alive(self) -> bool:
        ...

    async def close(self) -> None:
        ...


def static_body(text: str) -> Callable[[], Awaitable[str]]:
    """fetch_body callable for a body that is already known."""
    async def fetch() -> str:
        return text
    return fetch

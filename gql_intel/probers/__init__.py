# gql_intel/probers/__init__.py
"""
Probers Package
Network event sources and GraphQL traffic correlation
"""

from .events import EventSource, RequestEvent, ResponseEvent
from .har_replay import HarEventSource
from .network_sniffer import NetworkCorrelator, is_graphql_request, parse_request_payloads

__all__ = [
    "EventSource",
    "RequestEvent",
    "ResponseEvent",
    "HarEventSource",
    "NetworkCorrelator",
    "is_graphql_request",
    "parse_request_payloads",
]

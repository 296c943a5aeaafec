"""Exception hierarchy for gql-intel."""


class GqlIntelError(Exception):
    """Base class for all gql-intel errors."""


class AssetFetchError(GqlIntelError):
    """A JavaScript asset could not be downloaded."""

    def __init__(self, url, reason):
        super().__init__(f"Failed to download {url}: {reason}")
        self.url = url
        self.reason = reason


class EventSourceError(GqlIntelError):
    """The upstream network-event source failed or disappeared."""


class ExportError(GqlIntelError):
    """A formatter could not render or write its output."""

    def __init__(self, formatter, reason):
        super().__init__(f"{formatter} export failed: {reason}")
        self.formatter = formatter
        self.reason = reason


class CaptureRunError(GqlIntelError):
    """Terminal error of a capture run. Partial results are still attached."""

    def __init__(self, message, result=None):
        super().__init__(message)
        self.result = result

import time

import requests

from gql_intel.errors import AssetFetchError
from gql_intel.utils.logger import get_logger

logger = get_logger(__name__)

CHUNK_SIZE = 64 * 1024


class AssetFetcher:
    """Downloads JavaScript assets discovered during a capture session."""

    def __init__(self, settings=None, progress=None, session=None):
        settings = settings or {}
        crawler_cfg = settings.get("crawler", {})

        user_agent = crawler_cfg.get("user_agent")
        self.headers = {"User-Agent": user_agent} if user_agent else {}
        self.timeout = crawler_cfg.get("timeout", 30)
        self.max_retries = int(crawler_cfg.get("max_retries", 1) or 0)
        self.retry_delay = float(crawler_cfg.get("retry_delay", 1.0))
        self.max_asset_bytes = int(crawler_cfg.get("max_asset_bytes", 0) or 0)

        self.progress = progress
        self.session = session or requests.Session()

    def fetch(self, url):
        """
        Download one asset and return its text.

        Raises:
            AssetFetchError: after every attempt failed
        """
        logger.info(f"Downloading: {url}")
        last_error = None
        for attempt in range(self.max_retries + 1):
            try:
                response = self.session.get(url, headers=self.headers, timeout=self.timeout, stream=True)
                try:
                    response.raise_for_status()
                    body = self._read_body(url, response)
                finally:
                    response.close()
                try:
                    text = body.decode(response.encoding or "utf-8", errors="ignore")
                except LookupError:
                    text = body.decode("utf-8", errors="ignore")
                break
            except requests.RequestException as e:
                last_error = e
                if attempt < self.max_retries:
                    time.sleep(self.retry_delay)
        else:
            raise AssetFetchError(url, last_error)

        size = len(body)
        if self.progress is not None:
            self.progress.record_download(size)
        logger.info(f"Downloaded: {url} ({size / 1024:.2f} KB)")
        return text

    def _read_body(self, url, response):
        # stops pulling from the socket once the cap is reached
        if not self.max_asset_bytes:
            return response.content
        body = bytearray()
        for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
            body.extend(chunk)
            if len(body) > self.max_asset_bytes:
                logger.warning(f"Truncating {url}: exceeds cap of {self.max_asset_bytes} bytes")
                del body[self.max_asset_bytes:]
                break
        return bytes(body)

    def close(self):
        self.session.close()

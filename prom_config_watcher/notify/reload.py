from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)


class ReloadNotifier:
    """POST an empty body to the Prometheus reload endpoint.

    Best effort: failures are logged, never raised and never retried.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.url = url
        self._timeout = timeout
        self._transport = transport

    def notify(self) -> int | None:
        """Send the reload request. Returns the status code, or *None* on failure."""
        logger.debug("notifier: posting reload command to %s", self.url)
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.post(self.url, headers={"Content-Type": "text/plain"})
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.error("notifier: error posting reload command to %s: %s", self.url, exc)
            return None

        status = response.status_code
        if status >= 400:
            logger.warning("notifier: reload request to %s returned status %d", self.url, status)
        else:
            logger.debug("notifier: status code %d", status)
        return status

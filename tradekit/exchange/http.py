from __future__ import annotations

"""
HTTP transport on top of requests.

Implements the `HttpClient` protocol: perform the call, hand back status code
and raw body. Decoding and error interpretation stay with the exchange client.
"""

import logging
from typing import Mapping, Optional

import requests

from tradekit.exchange.common import HttpResponse, ServerError

logger = logging.getLogger(__name__)


class RequestsHttpClient:
    def __init__(
        self,
        *,
        timeout_ms: int = 20000,
        session: Optional[requests.Session] = None,
        user_agent: str = "tradekit/0.1",
    ) -> None:
        self.timeout = timeout_ms / 1000.0
        if session is None:
            session = requests.Session()
            session.headers["User-Agent"] = user_agent
        self._session = session

    def request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Mapping[str, object]] = None,
        headers: Optional[Mapping[str, str]] = None,
        data: Optional[str] = None,
    ) -> HttpResponse:
        try:
            r = self._session.request(
                method,
                url,
                params=params,
                headers=dict(headers or {}),
                data=data,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"{method} {url} failed: {e}")
            raise ServerError(None, str(e)) from e
        logger.debug(f"{method} {url} -> {r.status_code}")
        return HttpResponse(status_code=r.status_code, body=r.content)

    def close(self) -> None:
        self._session.close()


__all__ = ["RequestsHttpClient"]

"""HTTP transport used by the executor."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from http.client import HTTPException
from typing import Any, Mapping, Protocol
from urllib import error, request

from .errors import HttpClientUnavailableError, StepTimeoutError, TransportError

READ_CHUNK_BYTES = 64 * 1024


@dataclass
class HttpResponse:
    """Raw response returned by an ``HttpClient``."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: str | None = None
    elapsed_ms: float = 0.0


class HttpClient(Protocol):
    """Sends a single request.

    Non-2xx statuses are responses, not errors. Implementations raise
    ``StepTimeoutError`` when ``timeout_ms`` elapses, ``TransportError`` for
    other network failures and ``HttpClientUnavailableError`` once they can
    no longer send anything.
    """

    def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: str | None,
        timeout_ms: int,
    ) -> HttpResponse: ...


class UrllibHttpClient:
    """``HttpClient`` backed by ``urllib.request``.

    ``timeout_ms`` bounds each socket operation and the body is read in
    chunks against a total deadline, so a response that trickles in still
    fails with ``StepTimeoutError``. A single blocked read can overrun the
    deadline by at most the socket timeout.
    """

    def __init__(self, default_headers: Mapping[str, str] | None = None) -> None:
        self._default_headers = dict(default_headers or {"Accept": "application/json"})
        self._closed = threading.Event()

    def close(self) -> None:
        self._closed.set()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: str | None,
        timeout_ms: int,
    ) -> HttpResponse:
        if self.closed:
            raise HttpClientUnavailableError("HTTP client has been closed")

        merged = dict(self._default_headers)
        merged.update(headers)
        data = body.encode("utf-8") if body is not None else None

        start = time.perf_counter()
        deadline = start + timeout_ms / 1000
        try:
            req = request.Request(url, data=data, headers=merged, method=method.upper())
            with request.urlopen(req, timeout=timeout_ms / 1000) as response:
                payload = _read_body(response, deadline, timeout_ms)
                status = response.getcode()
                response_headers = dict(response.headers.items())
        except error.HTTPError as exc:
            payload = _read_body(exc, deadline, timeout_ms) if exc.fp is not None else ""
            status = exc.code
            response_headers = dict(exc.headers.items()) if exc.headers else {}
        except error.URLError as exc:
            if isinstance(exc.reason, TimeoutError):
                raise StepTimeoutError(timeout_ms) from exc
            raise TransportError(f"HTTP request failed for {method} {url}: {exc.reason}") from exc
        except TimeoutError as exc:
            raise StepTimeoutError(timeout_ms) from exc
        except (OSError, HTTPException) as exc:
            raise TransportError(f"HTTP request failed for {method} {url}: {exc}") from exc
        except ValueError as exc:
            # http.client.InvalidURL and unknown URL types
            raise TransportError(f"Invalid request URL {url!r}: {exc}") from exc
        elapsed_ms = (time.perf_counter() - start) * 1000
        return HttpResponse(status=status, headers=response_headers, body=payload, elapsed_ms=elapsed_ms)


def _read_body(stream: Any, deadline: float, timeout_ms: int) -> str:
    """Read ``stream`` chunk by chunk, failing once ``deadline`` has passed."""

    chunks: list[bytes] = []
    while True:
        if time.perf_counter() >= deadline:
            raise StepTimeoutError(timeout_ms)
        chunk = stream.read1(READ_CHUNK_BYTES)
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks).decode("utf-8", errors="replace")

"""Instrumented HTTP client: auto-timing, error capture and metric emission."""

from __future__ import annotations

import errno
import json
import socket
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import aiohttp

from rampforge.dsl.checks import evaluate_checks
from rampforge.metrics.models import ErrorKind, RequestMetric

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from rampforge.metrics.models import CheckResult

__all__ = ["HttpClient", "RequestMetric", "Response", "classify_error"]

# Failures that become error samples instead of exceptions.
_CAPTURED_ERRORS = (aiohttp.ClientError, TimeoutError, OSError)


def _noop_metric_callback(metric: RequestMetric) -> None:
    """Default no-op metric callback."""


def _noop_check_callback(result: CheckResult) -> None:
    """Default no-op check callback."""


def classify_error(exc: BaseException) -> ErrorKind:
    """Map a request exception onto an :class:`ErrorKind`.

    Args:
        exc: Exception raised while sending the request or reading the body.

    Returns:
        The matching error kind; ``OTHER`` when nothing more specific fits.
    """
    if isinstance(exc, TimeoutError):
        return ErrorKind.TIMEOUT
    if isinstance(exc, aiohttp.InvalidURL):
        return ErrorKind.INVALID_URL
    if isinstance(exc, aiohttp.ClientConnectorError):
        os_error = exc.os_error
        if isinstance(os_error, socket.gaierror):
            return ErrorKind.DNS
        if isinstance(os_error, ConnectionRefusedError) or os_error.errno == errno.ECONNREFUSED:
            return ErrorKind.CONNECTION_REFUSED
        return ErrorKind.CONNECTION
    if isinstance(exc, ConnectionRefusedError):
        return ErrorKind.CONNECTION_REFUSED
    if isinstance(exc, aiohttp.ClientConnectionError | OSError):
        return ErrorKind.CONNECTION
    return ErrorKind.OTHER


@dataclass(frozen=True)
class Response:
    """Fully read HTTP response, or the record of a failed request.

    A failed request has ``status == 0`` and *error*/*error_kind* set.

    Attributes:
        status: HTTP status code, 0 if no response arrived.
        url: Requested URL.
        latency_ms: Wall-clock time including reading the body.
        body: Raw response body.
        headers: Response headers (case-insensitive lookup).
        error: ``"<ExceptionType>: <message>"`` for failed requests.
        error_kind: Classification of *error*.
    """

    status: int
    url: str
    latency_ms: float
    body: bytes = b""
    headers: Mapping[str, str] = field(default_factory=dict)
    error: str | None = None
    error_kind: ErrorKind | None = None

    @property
    def ok(self) -> bool:
        """True when a response arrived with a status below 400."""
        return self.error is None and 0 < self.status < 400

    def text(self, encoding: str = "utf-8") -> str:
        return self.body.decode(encoding, errors="replace")

    def json(self) -> Any:
        return json.loads(self.body)


class HttpClient:
    """Instrumented async HTTP client wrapping ``aiohttp.ClientSession``.

    Every request is timed and reported as a ``RequestMetric`` through
    *metric_callback*.  Network failures (timeouts, refused connections,
    DNS errors) are returned as a :class:`Response` with ``status == 0``
    rather than raised, so one failing request never ends a virtual user.

    Attributes:
        base_url: Prefix for relative request paths.  Absolute ``http://``
            or ``https://`` URLs are used as given.
        headers: Mutable headers dict applied to every request.  Setup hooks
            can modify this to add authentication tokens.
    """

    def __init__(
        self,
        base_url: str = "",
        headers: dict[str, str] | None = None,
        metric_callback: Callable[[RequestMetric], None] | None = None,
        check_callback: Callable[[CheckResult], None] | None = None,
        *,
        worker_id: int = 0,
        scenario: str = "default",
        timeout: float = 30.0,
        pool_size: int = 100,
    ) -> None:
        """Initialize the HTTP client.

        Args:
            base_url: Prefix for relative request paths.
            headers: Default headers applied to every request.
            metric_callback: Receives one ``RequestMetric`` per request.
            check_callback: Receives one ``CheckResult`` per evaluated check.
            worker_id: Virtual user id stamped on every metric.
            scenario: Scenario name stamped on every metric and check.
            timeout: Total per-request timeout in seconds.
            pool_size: Maximum simultaneous connections.
        """
        self.base_url = base_url.rstrip("/")
        self.headers: dict[str, str] = dict(headers or {})
        self._metric_callback = metric_callback or _noop_metric_callback
        self._check_callback = check_callback or _noop_check_callback
        self._worker_id = worker_id
        self._scenario = scenario
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._pool_size = pool_size
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> HttpClient:
        self._session = aiohttp.ClientSession(
            timeout=self._timeout,
            connector=aiohttp.TCPConnector(limit=self._pool_size),
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def get(self, path: str, *, name: str | None = None, **kwargs: Any) -> Response:
        """Send a GET request.  See :meth:`request`."""
        return await self.request("GET", path, name=name, **kwargs)

    async def post(self, path: str, *, name: str | None = None, **kwargs: Any) -> Response:
        """Send a POST request.  See :meth:`request`."""
        return await self.request("POST", path, name=name, **kwargs)

    async def put(self, path: str, *, name: str | None = None, **kwargs: Any) -> Response:
        """Send a PUT request.  See :meth:`request`."""
        return await self.request("PUT", path, name=name, **kwargs)

    async def patch(self, path: str, *, name: str | None = None, **kwargs: Any) -> Response:
        """Send a PATCH request.  See :meth:`request`."""
        return await self.request("PATCH", path, name=name, **kwargs)

    async def delete(self, path: str, *, name: str | None = None, **kwargs: Any) -> Response:
        """Send a DELETE request.  See :meth:`request`."""
        return await self.request("DELETE", path, name=name, **kwargs)

    async def head(self, path: str, *, name: str | None = None, **kwargs: Any) -> Response:
        """Send a HEAD request.  See :meth:`request`."""
        return await self.request("HEAD", path, name=name, **kwargs)

    async def request(
        self,
        method: str,
        path: str,
        *,
        name: str | None = None,
        **kwargs: Any,
    ) -> Response:
        """Send an HTTP request, read the body, and emit a metric.

        Args:
            method: HTTP method (GET, POST, etc.).
            path: Path appended to ``base_url``, or an absolute URL.
            name: Logical name for metric grouping.  Defaults to the path.
            **kwargs: Passed through to ``aiohttp.ClientSession.request``
                (``json=``, ``data=``, ``params=`` ...).

        Returns:
            The read :class:`Response`.  Network failures yield
            ``status == 0`` with *error* and *error_kind* set.

        Raises:
            RuntimeError: If used outside of ``async with``.
        """
        if self._session is None:
            msg = "HttpClient must be used as an async context manager"
            raise RuntimeError(msg)

        url = self._build_url(path)
        merged_headers = {**self.headers, **kwargs.pop("headers", {})}

        start = time.monotonic()
        status = 0
        body = b""
        headers: Mapping[str, str] = {}
        error: str | None = None
        error_kind: ErrorKind | None = None

        try:
            async with self._session.request(
                method, url, headers=merged_headers, **kwargs
            ) as resp:
                body = await resp.read()
                status = resp.status
                headers = resp.headers
        except _CAPTURED_ERRORS as exc:
            status = 0
            error = f"{type(exc).__name__}: {exc}"
            error_kind = classify_error(exc)

        latency_ms = (time.monotonic() - start) * 1000
        self._metric_callback(
            RequestMetric(
                timestamp=start,
                name=name or path,
                method=method,
                url=url,
                status_code=status,
                latency_ms=latency_ms,
                content_length=len(body),
                error=error,
                error_kind=error_kind,
                worker_id=self._worker_id,
                scenario=self._scenario,
            )
        )

        return Response(
            status=status,
            url=url,
            latency_ms=latency_ms,
            body=body,
            headers=headers,
            error=error,
            error_kind=error_kind,
        )

    def check(self, subject: Any, checks: Mapping[str, Callable[[Any], object]]) -> bool:
        """Evaluate named predicates and record each outcome.

        Args:
            subject: Value passed to every predicate, usually a Response.
            checks: Check name -> predicate.

        Returns:
            True if every predicate passed.

        Example::

            client.check(response, {"status equals 200": lambda r: r.status == 200})
        """
        results = evaluate_checks(subject, checks, scenario=self._scenario)
        for result in results:
            self._check_callback(result)
        return all(r.passed for r in results)

    def _build_url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}{path}"

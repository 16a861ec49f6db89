from __future__ import annotations

import logging
import re
import socket
import ssl
import threading
import time
from dataclasses import replace
from typing import Dict, List, Optional
from urllib.parse import urlsplit

import requests
import urllib3
from requests.structures import CaseInsensitiveDict

from .constants import (
    BINARY_BODY_PLACEHOLDER,
    DEFAULT_METHOD,
    DEFAULT_TIMEOUT,
    DEFAULT_USER_AGENT,
    HEAD_BODY_PLACEHOLDER,
    MAX_REDIRECTS,
    READ_CHUNK_SIZE,
    TEXT_PREVIEW_CHARS,
    TRUNCATION_MARKER,
)
from .errors import BodyReadFailed, InvalidURL, RequestFailed, Timeout, TooManyRedirects
from .models import HttpRequestSpec, HttpResponseResult, RequestInfo
from .preview import is_binary_content, render_binary_preview

logger = logging.getLogger(__name__)

SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://")

TLS_LABELS = {
    0x0301: "TLS 1.0",
    0x0302: "TLS 1.1",
    0x0303: "TLS 1.2",
    0x0304: "TLS 1.3",
}

HTTP_VERSIONS = {
    9: "HTTP/0.9",
    10: "HTTP/1.0",
    11: "HTTP/1.1",
    20: "HTTP/2",
    30: "HTTP/3",
}


# --- Helpers ---

def tls_version_label(code: int) -> str:
    """Map a TLS protocol code (e.g. 0x0303) to a label like 'TLS 1.2'."""
    return TLS_LABELS.get(code, f"TLS 0x{code:04x}")


def negotiated_tls_label(name: Optional[str]) -> Optional[str]:
    """Label the protocol name ssl reports ('TLSv1.3') via its wire code."""
    if not name:
        return None
    try:
        code = ssl.TLSVersion[name.replace(".", "_")].value
    except KeyError:
        return name
    return tls_version_label(code)


def normalize_spec(spec: HttpRequestSpec) -> HttpRequestSpec:
    """Validate the URL and fill in defaults before any network I/O."""
    url = (spec.url or "").strip()
    try:
        if not SCHEME_RE.match(url):
            url = "https://" + url
        parts = urlsplit(url)
        parts.port  # raises ValueError for a malformed port
    except ValueError as exc:
        raise InvalidURL(f"invalid URL: {exc}", {"url": spec.url}) from exc

    if parts.scheme.lower() not in ("http", "https"):
        raise InvalidURL(f"invalid URL: unsupported scheme '{parts.scheme}'", {"url": spec.url})
    if not parts.hostname:
        raise InvalidURL("invalid URL: missing host", {"url": spec.url})

    method = (spec.method or DEFAULT_METHOD).strip().upper() or DEFAULT_METHOD
    timeout = spec.timeout if spec.timeout and spec.timeout > 0 else DEFAULT_TIMEOUT
    return replace(
        spec,
        url=url,
        method=method,
        timeout=timeout,
        headers=dict(spec.headers or {}),
        head_only=spec.head_only or method == "HEAD",
    )


def declared_length(headers) -> int:
    value = headers.get("Content-Length")
    try:
        return int(value) if value is not None else -1
    except ValueError:
        return -1


def encode_header_values(headers: Dict[str, str]) -> Dict[str, bytes]:
    """Header values go on the wire as UTF-8, not http.client's Latin-1."""
    return {name: value.encode("utf-8") for name, value in headers.items()}


def decode_header_values(headers) -> Dict[str, str]:
    return {
        name: value.decode("utf-8", errors="replace") if isinstance(value, bytes) else value
        for name, value in headers.items()
    }


def _socket_of(response: requests.Response):
    connection = getattr(response.raw, "connection", None)
    return getattr(connection, "sock", None)


class Deadline:
    """Wall-clock budget for one call.

    A timer runs for the whole budget. Every response that arrives (redirect
    hops included) is registered through a response hook; when the timer
    fires, the socket of the registered response is shut down so a read
    blocked on it returns at once instead of waiting for the next chunk.
    """

    def __init__(self, seconds: float) -> None:
        self.expires_at = time.monotonic() + seconds
        self._fired = False
        self._response: Optional[requests.Response] = None
        self._lock = threading.Lock()
        self._timer = threading.Timer(seconds, self._expire)
        self._timer.daemon = True

    def __enter__(self) -> "Deadline":
        self._timer.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self._timer.cancel()

    @property
    def expired(self) -> bool:
        return self._fired or time.monotonic() >= self.expires_at

    def remaining(self) -> float:
        return max(self.expires_at - time.monotonic(), 0.0)

    def watch(self, response: requests.Response, *args, **kwargs) -> None:
        with self._lock:
            self._response = response
            fired = self._fired
        if fired:
            self._cancel(response)

    def _expire(self) -> None:
        with self._lock:
            self._fired = True
            response = self._response
        if response is not None:
            self._cancel(response)

    @staticmethod
    def _cancel(response: requests.Response) -> None:
        sock = _socket_of(response)
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as exc:
            logger.debug(f"socket already gone when deadline expired: {exc}")


# --- Transport ---

class HttpTransport:
    """Reusable outbound connection pools, one requests.Session per trust policy.

    A session negotiated with certificate verification is never handed out for
    an insecure call and vice versa, so pooled TLS connections cannot leak
    across trust settings. Timeouts are passed per request.
    """

    def __init__(self, max_redirects: int = MAX_REDIRECTS) -> None:
        self.max_redirects = max_redirects
        self._sessions: Dict[bool, requests.Session] = {}
        self._lock = threading.Lock()

    def session(self, verify_tls: bool) -> requests.Session:
        with self._lock:
            session = self._sessions.get(verify_tls)
            if session is None:
                session = self._create_session(verify_tls)
                self._sessions[verify_tls] = session
            return session

    def _create_session(self, verify_tls: bool) -> requests.Session:
        session = requests.Session()
        session.verify = verify_tls
        session.trust_env = False
        session.max_redirects = self.max_redirects
        session.headers = CaseInsensitiveDict()
        return session

    def close(self) -> None:
        with self._lock:
            for session in self._sessions.values():
                session.close()
            self._sessions.clear()

    def __enter__(self) -> "HttpTransport":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


# --- Executor ---

class HttpExecutor:
    """Runs one HTTP probe per call and returns a fully classified result."""

    def __init__(self, transport: Optional[HttpTransport] = None) -> None:
        self.transport = transport or HttpTransport()

    def execute(self, spec: HttpRequestSpec) -> HttpResponseResult:
        spec = normalize_spec(spec)

        headers = dict(spec.headers)
        if not any(name.lower() == "user-agent" for name in headers):
            headers["User-Agent"] = DEFAULT_USER_AGENT
        data = spec.body.encode("utf-8") if spec.body and not spec.head_only else None

        session = self.transport.session(spec.verify_tls)
        try:
            prepared = session.prepare_request(
                requests.Request(spec.method, spec.url, headers=encode_header_values(headers), data=data)
            )
        except (requests.exceptions.InvalidURL, requests.exceptions.MissingSchema,
                requests.exceptions.InvalidSchema) as exc:
            raise InvalidURL(f"invalid URL: {exc}", {"url": spec.url}) from exc
        except (requests.exceptions.InvalidHeader, ValueError) as exc:
            raise RequestFailed(f"could not build request: {exc}", {"url": spec.url}) from exc

        if not spec.verify_tls:
            logger.debug(f"certificate verification disabled for {spec.url}")
        logger.debug(f"{spec.method} {spec.url} (timeout={spec.timeout}s, follow={spec.follow_redirects})")

        start = time.monotonic()
        with Deadline(spec.timeout) as deadline:
            prepared.register_hook("response", deadline.watch)
            response = self._send(session, prepared, spec, deadline)
            elapsed_ms = int((time.monotonic() - start) * 1000)
            try:
                return self._build_result(spec, prepared, response, elapsed_ms, deadline)
            finally:
                response.close()

    def _send(self, session: requests.Session, prepared: requests.PreparedRequest,
              spec: HttpRequestSpec, deadline: Deadline) -> requests.Response:
        details = {"url": spec.url, "method": spec.method}
        try:
            # total= caps connect plus waiting for headers by one budget.
            response = session.send(
                prepared,
                allow_redirects=spec.follow_redirects,
                stream=True,
                timeout=urllib3.Timeout(total=deadline.remaining()),
                verify=spec.verify_tls,
            )
        except requests.exceptions.TooManyRedirects as exc:
            if exc.response is not None:
                exc.response.close()
            logger.warning(f"too many redirects for {spec.url}")
            raise TooManyRedirects(
                f"stopped after more than {self.transport.max_redirects} redirects", details
            ) from exc
        except requests.exceptions.Timeout as exc:
            logger.warning(f"timeout after {spec.timeout}s for {spec.url}")
            raise Timeout(f"request timed out after {spec.timeout}s", details) from exc
        except (requests.exceptions.RequestException, OSError) as exc:
            if deadline.expired:
                logger.warning(f"timeout after {spec.timeout}s for {spec.url}")
                raise Timeout(f"request timed out after {spec.timeout}s", details) from exc
            logger.warning(f"request failed for {spec.url}: {exc}")
            raise RequestFailed(f"request failed: {exc}", details) from exc
        except UnicodeError as exc:
            # Header names must be ASCII on the wire.
            logger.warning(f"request failed for {spec.url}: {exc}")
            raise RequestFailed(f"request failed: header is not encodable: {exc}", details) from exc

        if deadline.expired:
            response.close()
            raise Timeout(f"request timed out after {spec.timeout}s", details)
        return response

    def _build_result(self, spec: HttpRequestSpec, prepared: requests.PreparedRequest,
                      response: requests.Response, elapsed_ms: int,
                      deadline: Deadline) -> HttpResponseResult:
        result = HttpResponseResult(url=spec.url, method=spec.method)
        result.status_code = response.status_code
        result.status_text = f"{response.status_code} {response.reason or ''}".strip()
        result.headers = dict(response.headers)
        result.response_time_ms = elapsed_ms
        result.content_type = response.headers.get("Content-Type", "")
        result.content_length = declared_length(response.headers)
        result.redirect_chain = self._redirect_chain(spec, response)
        # Socket details must be read before the body releases the connection.
        result.request_info = self._request_info(prepared, response)

        if spec.head_only:
            result.body = HEAD_BODY_PLACEHOLDER
            result.body_preview = HEAD_BODY_PLACEHOLDER
            result.body_size = result.content_length
            return result

        data = self._read_body(spec, response, deadline)
        result.body_size = len(data)
        try:
            text: Optional[str] = data.decode("utf-8")
        except UnicodeDecodeError:
            text = None

        result.is_binary = text is None or is_binary_content(result.content_type)
        if result.is_binary:
            result.body = BINARY_BODY_PLACEHOLDER.format(size=len(data))
            result.body_preview = render_binary_preview(data, result.content_type)
        else:
            result.body = text
            if len(text) > TEXT_PREVIEW_CHARS:
                result.body_preview = text[:TEXT_PREVIEW_CHARS] + TRUNCATION_MARKER
            else:
                result.body_preview = text
        return result

    def _read_body(self, spec: HttpRequestSpec, response: requests.Response,
                   deadline: Deadline) -> bytes:
        details = {"url": spec.url, "method": spec.method}
        chunks = []
        try:
            for chunk in response.iter_content(chunk_size=READ_CHUNK_SIZE):
                chunks.append(chunk)
                if deadline.expired:
                    break
        except (requests.exceptions.RequestException, OSError, ValueError) as exc:
            if deadline.expired:
                logger.warning(f"timeout after {spec.timeout}s reading body of {spec.url}")
                raise Timeout(f"request timed out after {spec.timeout}s", details) from exc
            logger.warning(f"error reading response body for {spec.url}: {exc}")
            raise BodyReadFailed(f"failed to read response body: {exc}", details) from exc

        # A cancelled read-until-close body ends like a normal EOF.
        if deadline.expired:
            logger.warning(f"timeout after {spec.timeout}s reading body of {spec.url}")
            raise Timeout(f"request timed out after {spec.timeout}s", details)
        return b"".join(chunks)

    @staticmethod
    def _redirect_chain(spec: HttpRequestSpec, response: requests.Response) -> List[str]:
        if not spec.follow_redirects or not response.history:
            return []
        return [hop.url for hop in response.history[1:]] + [response.url]

    @staticmethod
    def _request_info(prepared: requests.PreparedRequest,
                      response: requests.Response) -> RequestInfo:
        info = RequestInfo(
            final_url=response.url,
            protocol=HTTP_VERSIONS.get(getattr(response.raw, "version", None), ""),
            request_headers=decode_header_values(prepared.headers),
        )
        connection = getattr(response.raw, "connection", None)
        sock = getattr(connection, "sock", None)
        if sock is None:
            return info

        try:
            peer = sock.getpeername()
            host, port = peer[0], peer[1]
            info.remote_addr = f"[{host}]:{port}" if ":" in host else f"{host}:{port}"
        except (OSError, TypeError, IndexError):
            pass

        version = getattr(sock, "version", None)
        if callable(version):
            info.tls_version = negotiated_tls_label(version())
        return info

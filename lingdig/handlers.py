"""
Form handlers for the dig and curl tools.

These hold everything the web front end does between receiving a form
submission and rendering JSON: binding fields, applying defaults, running the
executor and turning failures into an ``error`` field. Each returns an
``(http_status, payload)`` pair so any web framework can serve it as-is.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional, Tuple

from .constants import DEFAULT_DNS_SERVER, DEFAULT_METHOD, DEFAULT_RECORD_TYPE, DEFAULT_TIMEOUT
from .curl_parser import parse_curl_command
from .dns_executor import DnsExecutor
from .errors import LingDigError
from .http_executor import HttpExecutor
from .models import HttpRequestSpec


TRUE_VALUES = ("on", "true", "1")

Payload = Dict[str, Any]


def form_bool(form: Mapping[str, str], key: str) -> bool:
    """HTML checkboxes submit 'on'; API clients tend to send 'true' or '1'."""
    return (form.get(key) or "").strip().lower() in TRUE_VALUES


def form_int(form: Mapping[str, str], key: str, default: int) -> int:
    try:
        return int(form.get(key) or default)
    except ValueError:
        return default


def form_headers(form: Mapping[str, str]) -> Dict[str, str]:
    raw = form.get("headers_json") or ""
    if not raw:
        return {}
    try:
        headers = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    if not isinstance(headers, dict):
        return {}
    return {str(k): str(v) for k, v in headers.items()}


def bind_curl_form(form: Mapping[str, str]) -> HttpRequestSpec:
    return HttpRequestSpec(
        url=form.get("url") or "",
        method=form.get("method") or DEFAULT_METHOD,
        headers=form_headers(form),
        body=form.get("body") or "",
        timeout=form_int(form, "timeout", DEFAULT_TIMEOUT),
        follow_redirects=form_bool(form, "follow_redirect"),
        verify_tls=form_bool(form, "verify_ssl"),
        head_only=form_bool(form, "head_only"),
    )


def dig_lookup(form: Mapping[str, str], executor: Optional[DnsExecutor] = None) -> Tuple[int, Payload]:
    domain = (form.get("domain") or "").strip()
    if not domain:
        return 400, {"domain": "", "record_type": "", "server": "", "results": None,
                     "error": "domain must not be empty"}

    record_type = form.get("record_type") or DEFAULT_RECORD_TYPE
    server = form.get("server") or DEFAULT_DNS_SERVER
    payload: Payload = {"domain": domain, "record_type": record_type, "server": server, "results": None}

    executor = executor or DnsExecutor()
    try:
        records = executor.query(domain, record_type, server)
    except LingDigError as exc:
        payload["error"] = exc.message
        return 500, payload

    payload["results"] = [record.to_dict() for record in records]
    return 200, payload


def curl_probe(form: Mapping[str, str], executor: Optional[HttpExecutor] = None) -> Tuple[int, Payload]:
    command = form.get("curl_command") or ""
    if command:
        try:
            spec = parse_curl_command(command)
        except LingDigError as exc:
            return 400, {"error": f"failed to parse curl command: {exc.message}"}
    else:
        spec = bind_curl_form(form)

    if not spec.url.strip():
        return 400, {"error": "URL must not be empty"}

    executor = executor or HttpExecutor()
    try:
        result = executor.execute(spec)
    except LingDigError as exc:
        return 500, {"url": exc.details.get("url", spec.url),
                     "method": exc.details.get("method", spec.method),
                     "error": exc.message}
    return 200, result.to_dict()

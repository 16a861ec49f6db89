from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from .constants import DEFAULT_METHOD, DEFAULT_TIMEOUT


@dataclass
class HttpRequestSpec:
    """Describes one HTTP probe, built from a form or a curl command."""
    url: str
    method: str = DEFAULT_METHOD
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""
    timeout: int = DEFAULT_TIMEOUT
    follow_redirects: bool = True
    verify_tls: bool = True
    head_only: bool = False


@dataclass
class RequestInfo:
    final_url: str = ""
    remote_addr: str = ""
    protocol: str = ""
    tls_version: Optional[str] = None
    request_headers: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if not data["tls_version"]:
            del data["tls_version"]
        return data


@dataclass
class HttpResponseResult:
    url: str
    method: str
    status_code: int = 0
    status_text: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""
    body_preview: str = ""
    body_size: int = 0
    is_binary: bool = False
    response_time_ms: int = 0
    content_length: int = -1
    content_type: str = ""
    error: Optional[str] = None
    redirect_chain: List[str] = field(default_factory=list)
    request_info: RequestInfo = field(default_factory=RequestInfo)

    def to_dict(self) -> Dict[str, Any]:
        """Flat JSON-ready mapping; empty error and redirect chain are omitted."""
        data = asdict(self)
        data["request_info"] = self.request_info.to_dict()
        if not data["error"]:
            del data["error"]
        if not data["redirect_chain"]:
            del data["redirect_chain"]
        return data


@dataclass
class DnsRecord:
    name: str
    type: str
    ttl: int
    value: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

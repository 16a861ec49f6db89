"""LingDig - HTTP probing and DNS lookup diagnostics."""

__version__ = "1.0.0"

from .curl_parser import parse_curl_command
from .dns_executor import DnsExecutor
from .errors import LingDigError
from .http_executor import HttpExecutor, HttpTransport
from .models import DnsRecord, HttpRequestSpec, HttpResponseResult, RequestInfo
from .preview import is_binary_content, render_binary_preview

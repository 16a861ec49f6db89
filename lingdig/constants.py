# --- HTTP ---
DEFAULT_METHOD = "GET"
DEFAULT_TIMEOUT = 30
DEFAULT_USER_AGENT = "LingDig/1.0 (HTTP Client)"
MAX_REDIRECTS = 10
READ_CHUNK_SIZE = 65536

TEXT_PREVIEW_CHARS = 10000
TRUNCATION_MARKER = "\n\n... [内容过长，已截断]"
BINARY_BODY_PLACEHOLDER = "[二进制数据 - {size} 字节]"
HEAD_BODY_PLACEHOLDER = "[HEAD请求 - 仅获取响应头]"

BINARY_CONTENT_PREFIXES = (
    "image/", "audio/", "video/", "application/octet-stream",
    "application/pdf", "application/zip", "application/gzip",
    "application/x-", "font/", "model/",
)

# --- Binary preview ---
HEX_PREVIEW_BYTES = 64
HEX_BYTES_PER_LINE = 16

# --- DNS ---
DNS_TIMEOUT = 5.0
DNS_PORT = 53
DEFAULT_RECORD_TYPE = "A"
DEFAULT_DNS_SERVER = "8.8.8.8:53"

from __future__ import annotations

from typing import List, Tuple

from .constants import BINARY_CONTENT_PREFIXES, HEX_BYTES_PER_LINE, HEX_PREVIEW_BYTES

# First matching prefix wins; anything else is a generic binary file.
CONTENT_LABELS: List[Tuple[str, str]] = [
    ("image/", "📷 图片文件"),
    ("audio/", "🎵 音频文件"),
    ("video/", "🎬 视频文件"),
    ("application/pdf", "📄 PDF文档"),
    ("application/zip", "📦 压缩文件"),
]
FALLBACK_LABEL = "📁 二进制文件"


def is_binary_content(content_type: str) -> bool:
    """Return True if the declared content type names a binary format."""
    content_type = (content_type or "").lower()
    return content_type.startswith(BINARY_CONTENT_PREFIXES)


def content_label(content_type: str) -> str:
    content_type = (content_type or "").lower()
    for prefix, label in CONTENT_LABELS:
        if content_type.startswith(prefix):
            return label
    return FALLBACK_LABEL


def hex_dump_line(offset: int, chunk: bytes) -> str:
    hex_part = "".join(f"{b:02x} " for b in chunk)
    ascii_part = "".join(chr(b) if 0x20 <= b <= 0x7E else "." for b in chunk)
    return f"{offset:04x}: {hex_part:<48} |{ascii_part}|"


def render_binary_preview(data: bytes, content_type: str) -> str:
    """Render a short human-readable summary and hex dump of a binary body.

    Only the first 64 bytes are dumped, 16 per line; a trailing ``...`` line
    marks that the body is longer than what is shown.
    """
    lines = [
        f"Content-Type: {content_type}",
        f"Size: {len(data)} bytes",
        "",
        content_label(content_type),
        "",
        f"十六进制预览 (前{HEX_PREVIEW_BYTES}字节):",
    ]
    shown = data[:HEX_PREVIEW_BYTES]
    for offset in range(0, len(shown), HEX_BYTES_PER_LINE):
        lines.append(hex_dump_line(offset, shown[offset:offset + HEX_BYTES_PER_LINE]))
    if len(data) > HEX_PREVIEW_BYTES:
        lines.append("...")
    return "\n".join(lines) + "\n"

from __future__ import annotations

import logging
from typing import List

from .errors import MissingURL
from .models import HttpRequestSpec

logger = logging.getLogger(__name__)

# Options that take the next token as their argument.
ARG_OPTIONS = {"-X", "--request", "-H", "--header", "-d", "--data"}

QUOTES = "\"'"


def tokenize(command: str) -> List[str]:
    """Split a command line on whitespace, keeping quoted spans together.

    A quote only opens a span at the start of a token, and the outer quotes
    of the span are dropped. Quotes inside a token and backslashes are kept
    literally, so ``-d {"a":1}`` passes through unchanged. Unbalanced quoting
    is not repaired: the line is split on plain whitespace instead.
    """
    tokens: List[str] = []
    current: List[str] = []
    quote = None
    in_token = False
    for ch in command:
        if quote:
            if ch == quote:
                quote = None
            else:
                current.append(ch)
        elif ch.isspace():
            if in_token:
                tokens.append("".join(current))
                current, in_token = [], False
        elif ch in QUOTES and not in_token:
            quote, in_token = ch, True
        else:
            current.append(ch)
            in_token = True

    if quote:
        logger.debug("unbalanced quotes in curl command, using plain split")
        return command.split()
    if in_token:
        tokens.append("".join(current))
    return tokens


def parse_curl_command(command: str) -> HttpRequestSpec:
    """Translate a ``curl ...`` command line into an HttpRequestSpec.

    Only the handful of options a quick diagnostic needs are recognised:
    -I, -X, -H, -d, -k and -L (plus their long forms). Anything else that
    starts with a dash is skipped.
    """
    spec = HttpRequestSpec(url="")

    command = command.strip()
    if command.startswith("curl "):
        command = command[5:]

    tokens = tokenize(command)
    fallback_url = ""
    i = 0
    while i < len(tokens):
        part = tokens[i]
        arg = tokens[i + 1] if part in ARG_OPTIONS and i + 1 < len(tokens) else None
        if part in ARG_OPTIONS:
            i += 2
        else:
            i += 1

        if part in ("-I", "--head"):
            spec.method = "HEAD"
            spec.head_only = True
        elif part in ("-X", "--request"):
            if arg is not None:
                spec.method = arg.upper()
        elif part in ("-H", "--header"):
            if arg is not None and ":" in arg:
                key, value = arg.split(":", 1)
                key = key.strip()
                if key:
                    spec.headers[key] = value.strip()
        elif part in ("-d", "--data"):
            if arg is not None:
                spec.body = arg
                if spec.method == "GET":
                    spec.method = "POST"
        elif part in ("-k", "--insecure"):
            spec.verify_tls = False
        elif part in ("-L", "--location"):
            spec.follow_redirects = True
        elif part.startswith(("http://", "https://")):
            if not spec.url:
                spec.url = part
        elif not part.startswith("-") and not fallback_url:
            fallback_url = part

    spec.url = spec.url or fallback_url
    if not spec.url:
        raise MissingURL("no URL found in curl command")
    return spec

from __future__ import annotations

import argparse
import json
import logging
from typing import List, Optional

from . import __version__
from .console import Console
from .constants import DEFAULT_DNS_SERVER, DEFAULT_RECORD_TYPE, DEFAULT_TIMEOUT
from .curl_parser import parse_curl_command
from .dns_executor import DnsExecutor
from .errors import LingDigError
from .http_executor import HttpExecutor
from .models import DnsRecord, HttpRequestSpec, HttpResponseResult


# --- Output ---

def print_records(console: Console, domain: str, record_type: str, server: str,
                  records: List[DnsRecord]) -> None:
    console.section(f"DNS {record_type.upper()} {domain} @{server}")
    if not records:
        console.warn("No answer records.")
        return
    console.ok(f"{len(records)} record(s)")
    for r in records:
        console.raw(f"  {r.name}\t{r.ttl}\t{r.type}\t{r.value}")


def print_response(console: Console, result: HttpResponseResult) -> None:
    console.section(f"{result.method} {result.url}")
    if result.status_code < 400:
        console.ok(f"{result.status_text} in {result.response_time_ms} ms")
    else:
        console.warn(f"{result.status_text} in {result.response_time_ms} ms")

    info = result.request_info
    console.info(f"Final URL: {info.final_url}")
    if info.remote_addr: console.info(f"Remote: {info.remote_addr}")
    if info.protocol: console.info(f"Protocol: {info.protocol}")
    if info.tls_version: console.info(f"TLS: {info.tls_version}")
    for hop in result.redirect_chain:
        console.info(f"Redirect -> {hop}")

    console.section("Response Headers")
    for name, value in result.headers.items():
        console.raw(f"{name}: {value}")

    console.section(f"Body ({result.body_size} bytes{', binary' if result.is_binary else ''})")
    console.raw(result.body_preview)


# --- Commands ---

def run_dig(args: argparse.Namespace, console: Console) -> int:
    try:
        records = DnsExecutor().query(args.domain, args.type, args.server)
    except LingDigError as exc:
        if args.json:
            print(json.dumps({"domain": args.domain, "record_type": args.type,
                              "server": args.server, "error": exc.message}, ensure_ascii=False, indent=2))
        else:
            console.fail(exc.message)
        return 1

    if args.json:
        print(json.dumps({"domain": args.domain, "record_type": args.type, "server": args.server,
                          "results": [r.to_dict() for r in records]}, ensure_ascii=False, indent=2))
    else:
        print_records(console, args.domain, args.type, args.server, records)
    return 0


def build_spec(args: argparse.Namespace) -> HttpRequestSpec:
    if args.command:
        return parse_curl_command(args.command)
    if not args.url:
        raise LingDigError("a URL or --command is required")

    headers = {}
    for header in args.header:
        if ":" in header:
            name, value = header.split(":", 1)
            headers[name.strip()] = value.strip()
    spec = HttpRequestSpec(
        url=args.url,
        method=args.request or ("POST" if args.data else "GET"),
        headers=headers,
        body=args.data or "",
        timeout=args.max_time,
        follow_redirects=not args.no_follow,
        verify_tls=not args.insecure,
        head_only=args.head,
    )
    if args.head:
        spec.method = "HEAD"
    return spec


def run_curl(args: argparse.Namespace, console: Console) -> int:
    try:
        spec = build_spec(args)
        result = HttpExecutor().execute(spec)
    except LingDigError as exc:
        if args.json:
            print(json.dumps({"url": exc.details.get("url", args.url), "error": exc.message},
                             ensure_ascii=False, indent=2))
        else:
            console.fail(exc.message)
        return 1

    if args.json:
        print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    else:
        print_response(console, result)
    return 0


# --- Argument Parsing & Main ---

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="lingdig", description="LingDig - HTTP probe and DNS lookup tool")
    parser.add_argument("--json", action="store_true", help="Output results as JSON")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument("--quiet", action="store_true", help="Suppress output except errors/JSON")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="tool", required=True)

    dig = sub.add_parser("dig", help="Query a DNS resolver")
    dig.add_argument("domain")
    dig.add_argument("-t", "--type", default=DEFAULT_RECORD_TYPE, help="Record type (default: A)")
    dig.add_argument("-s", "--server", default=DEFAULT_DNS_SERVER, help="Resolver host:port (default: 8.8.8.8:53)")

    curl = sub.add_parser("curl", help="Probe an HTTP(S) URL")
    curl.add_argument("url", nargs="?", default="")
    curl.add_argument("--command", default=None, help="Full curl command line to translate")
    curl.add_argument("-X", "--request", default=None, help="HTTP method")
    curl.add_argument("-H", "--header", action="append", default=[], help="Header 'Name: value' (repeatable)")
    curl.add_argument("-d", "--data", default=None, help="Request body")
    curl.add_argument("-I", "--head", action="store_true", help="Fetch headers only")
    curl.add_argument("-k", "--insecure", action="store_true", help="Skip certificate verification")
    curl.add_argument("-L", "--location", action="store_true", help="Follow redirects (default)")
    curl.add_argument("--no-follow", action="store_true", help="Return the first redirect as-is")
    curl.add_argument("-m", "--max-time", type=int, default=DEFAULT_TIMEOUT, help="Deadline in seconds")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    console = Console(use_color=not args.no_color, quiet=args.quiet or args.json)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    if args.tool == "dig":
        return run_dig(args, console)
    return run_curl(args, console)


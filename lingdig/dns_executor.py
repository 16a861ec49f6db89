from __future__ import annotations

import ipaddress
import logging
import re
import socket
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Callable, Dict, List, Tuple

import dns.exception
import dns.flags
import dns.message
import dns.name
import dns.query
import dns.rcode
import dns.rdataclass
import dns.rdatatype
import dns.rrset
from dns.rdata import Rdata

from .constants import DNS_PORT, DNS_TIMEOUT
from .errors import QueryFailed, ResolverError, UnsupportedRecordType
from .models import DnsRecord

logger = logging.getLogger(__name__)

GENERIC_TYPE_RE = re.compile(r"^TYPE\d+$")


# --- Record rendering ---

def _address(rdata) -> str:
    return rdata.address

def _target(rdata) -> str:
    return rdata.target.to_text()

def _mx(rdata) -> str:
    return f"{rdata.preference} {rdata.exchange.to_text()}"

def _txt(rdata) -> str:
    return " ".join(s.decode("utf-8", errors="replace") for s in rdata.strings)

def _soa(rdata) -> str:
    return (f"{rdata.mname.to_text()} {rdata.rname.to_text()} {rdata.serial} "
            f"{rdata.refresh} {rdata.retry} {rdata.expire} {rdata.minimum}")

def _srv(rdata) -> str:
    return f"{rdata.priority} {rdata.weight} {rdata.port} {rdata.target.to_text()}"


RENDERERS: Dict[int, Callable[[Rdata], str]] = {
    dns.rdatatype.A: _address,
    dns.rdatatype.AAAA: _address,
    dns.rdatatype.CNAME: _target,
    dns.rdatatype.MX: _mx,
    dns.rdatatype.NS: _target,
    dns.rdatatype.TXT: _txt,
    dns.rdatatype.SOA: _soa,
    dns.rdatatype.PTR: _target,
    dns.rdatatype.SRV: _srv,
}


def render_rdata(rrset: dns.rrset.RRset, rdata: Rdata) -> str:
    """Render one record's data; unknown kinds use the full record line."""
    renderer = RENDERERS.get(rdata.rdtype)
    if renderer is not None:
        return renderer(rdata)
    return "\t".join((
        rrset.name.to_text(),
        str(rrset.ttl),
        dns.rdataclass.to_text(rdata.rdclass),
        dns.rdatatype.to_text(rdata.rdtype),
        rdata.to_text(),
    ))


def parse_record_type(record_type: str) -> dns.rdatatype.RdataType:
    token = (record_type or "").strip().upper()
    if not token or GENERIC_TYPE_RE.match(token):
        raise UnsupportedRecordType(f"unsupported record type: {record_type}")
    try:
        return dns.rdatatype.from_text(token)
    except (dns.exception.DNSException, ValueError) as exc:
        raise UnsupportedRecordType(f"unsupported record type: {record_type}") from exc


def parse_server(server: str) -> Tuple[str, int]:
    """Split 'host', 'host:port', '[v6]:port' or a bare IPv6 literal."""
    server = (server or "").strip()
    port = DNS_PORT
    if server.startswith("["):
        host, _, rest = server[1:].partition("]")
        if rest.startswith(":"):
            port = int(rest[1:])
    elif server.count(":") == 1:
        host, _, port_text = server.partition(":")
        port = int(port_text)
    else:
        host = server
    if not host or not 0 < port < 65536:
        raise ValueError(f"invalid server address: {server!r}")
    return host, port


def resolve_server_address(host: str, port: int, timeout: float) -> str:
    """Return an IP for the server, resolving a hostname within ``timeout``."""
    try:
        ipaddress.ip_address(host)
        return host
    except ValueError:
        pass
    pool = ThreadPoolExecutor(max_workers=1)
    try:
        future = pool.submit(socket.getaddrinfo, host, port, type=socket.SOCK_DGRAM)
        infos = future.result(timeout=timeout)
    except FutureTimeout as exc:
        raise dns.exception.Timeout(timeout=timeout) from exc
    finally:
        pool.shutdown(wait=False)
    return infos[0][4][0]


# --- Executor ---

class DnsExecutor:
    """Sends exactly one recursive query per call and normalises the answers."""

    def __init__(self, timeout: float = DNS_TIMEOUT) -> None:
        self.timeout = timeout

    def query(self, domain: str, record_type: str, server: str) -> List[DnsRecord]:
        details = {"domain": domain, "record_type": record_type, "server": server}
        rdtype = parse_record_type(record_type)

        try:
            host, port = parse_server(server)
        except ValueError as exc:
            raise QueryFailed(f"DNS query failed: invalid server '{server}'", details) from exc

        try:
            qname = dns.name.from_text(domain.strip())
            request = dns.message.make_query(qname, rdtype)
            request.flags |= dns.flags.RD
        except dns.exception.DNSException as exc:
            raise QueryFailed(f"DNS query failed: {exc}", details) from exc

        logger.debug(f"dig {qname} {dns.rdatatype.to_text(rdtype)} @{host}:{port}")
        try:
            started = time.monotonic()
            where = resolve_server_address(host, port, self.timeout)
            remaining = self.timeout - (time.monotonic() - started)
            if remaining <= 0:
                raise dns.exception.Timeout(timeout=self.timeout)
            response = dns.query.udp(request, where, timeout=remaining, port=port)
        except (dns.exception.DNSException, OSError) as exc:
            logger.warning(f"DNS query for {qname} via {server} failed: {exc!r}")
            raise QueryFailed(f"DNS query failed: {exc or type(exc).__name__}", details) from exc

        rcode = response.rcode()
        if rcode != dns.rcode.NOERROR:
            name = dns.rcode.to_text(rcode)
            raise ResolverError(f"DNS query returned error code: {name}", name, details)

        records = []
        for rrset in response.answer:
            for rdata in rrset:
                records.append(DnsRecord(
                    name=rrset.name.to_text(),
                    type=dns.rdatatype.to_text(rrset.rdtype),
                    ttl=rrset.ttl,
                    value=render_rdata(rrset, rdata),
                ))
        return records

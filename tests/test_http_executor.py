"""
Tests for the HTTP executor against a local HTTP server
"""
import json
import os
import socket
import ssl
import threading
import time
import unittest
from unittest import mock
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

from lingdig.constants import (
    DEFAULT_USER_AGENT,
    HEAD_BODY_PLACEHOLDER,
    TRUNCATION_MARKER,
)
from lingdig.errors import BodyReadFailed, InvalidURL, RequestFailed, Timeout, TooManyRedirects
from lingdig.http_executor import (
    Deadline,
    HttpExecutor,
    HttpTransport,
    negotiated_tls_label,
    normalize_spec,
    tls_version_label,
)
from lingdig.models import HttpRequestSpec

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + bytes(range(72))

DATA_DIR = os.path.join(os.path.dirname(__file__), "data")


class ProbeHandler(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"
    hits = []

    def log_message(self, format, *args):
        pass

    def _send(self, status, body=b"", content_type="text/plain; charset=utf-8", extra=None):
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        for name, value in extra or []:
            self.send_header(name, value)
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(body)

    def do_GET(self):
        self.hits.append((self.command, self.path))
        path = self.path
        if path == "/text":
            self._send(200, b"hello world")
        elif path == "/long":
            self._send(200, b"a" * 12000)
        elif path == "/exact":
            self._send(200, b"b" * 10000)
        elif path == "/png":
            self._send(200, PNG_BYTES, "image/png")
        elif path == "/latin1":
            self._send(200, b"caf\xe9", "text/plain")
        elif path == "/head":
            self._send(200, b"x" * 1234)
        elif path == "/multi":
            self._send(200, b"ok", extra=[("X-Multi", "a"), ("X-Multi", "b")])
        elif path == "/ua":
            self._send(200, self.headers.get("User-Agent", "").encode())
        elif path == "/slow":
            time.sleep(3)
            self._send(200, b"late")
        elif path == "/drip":
            self.send_response(200)
            self.send_header("Content-Type", "text/plain")
            self.send_header("Content-Length", "12")
            self.end_headers()
            self.close_connection = True
            try:
                for _ in range(12):
                    self.wfile.write(b"x")
                    time.sleep(0.4)
            except OSError:
                pass
        elif path == "/short":
            self.send_response(200)
            self.send_header("Content-Type", "text/plain")
            self.send_header("Content-Length", "100")
            self.end_headers()
            self.wfile.write(b"0123456789")
            self.close_connection = True
        elif path == "/name":
            # http.server decodes header bytes as Latin-1.
            self._send(200, self.headers.get("X-Name", "").encode("latin-1"))
        elif path.startswith("/redirect/"):
            remaining = int(path.rsplit("/", 1)[1])
            if remaining == 0:
                self._send(200, b"done")
            else:
                self._send(302, extra=[("Location", f"/redirect/{remaining - 1}")])
        else:
            self._send(404, b"not found")

    do_HEAD = do_GET

    def do_POST(self):
        self.hits.append((self.command, self.path))
        length = int(self.headers.get("Content-Length") or 0)
        payload = self.rfile.read(length)
        self._send(200, json.dumps({
            "method": self.command,
            "body": payload.decode(),
            "content_type": self.headers.get("Content-Type"),
        }).encode(), "application/json")


class QuietServer(ThreadingHTTPServer):
    daemon_threads = True

    def handle_error(self, request, client_address):
        pass


class TestHttpExecutor(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.server = QuietServer(("127.0.0.1", 0), ProbeHandler)
        cls.thread = threading.Thread(target=cls.server.serve_forever, daemon=True)
        cls.thread.start()
        cls.base = f"http://127.0.0.1:{cls.server.server_address[1]}"
        cls.transport = HttpTransport()
        cls.executor = HttpExecutor(cls.transport)

    @classmethod
    def tearDownClass(cls):
        cls.transport.close()
        cls.server.shutdown()
        cls.server.server_close()

    def setUp(self):
        ProbeHandler.hits.clear()

    def run_spec(self, path, **kwargs):
        return self.executor.execute(HttpRequestSpec(url=self.base + path, **kwargs))

    def test_text_body(self):
        """Test a short UTF-8 text body is returned verbatim"""
        result = self.run_spec("/text")

        self.assertEqual(result.status_code, 200)
        self.assertEqual(result.status_text, "200 OK")
        self.assertFalse(result.is_binary)
        self.assertEqual(result.body, "hello world")
        self.assertEqual(result.body_preview, "hello world")
        self.assertEqual(result.body_size, 11)
        self.assertEqual(result.content_length, 11)
        self.assertEqual(result.content_type, "text/plain; charset=utf-8")
        self.assertEqual(result.method, "GET")
        self.assertEqual(result.redirect_chain, [])
        self.assertGreaterEqual(result.response_time_ms, 0)

    def test_long_text_preview_is_truncated(self):
        """Test the preview keeps 10,000 characters plus a marker"""
        result = self.run_spec("/long")

        self.assertEqual(result.body, "a" * 12000)
        self.assertEqual(result.body_preview, "a" * 10000 + TRUNCATION_MARKER)
        self.assertEqual(result.body_size, 12000)

    def test_text_at_limit_is_not_truncated(self):
        result = self.run_spec("/exact")

        self.assertEqual(result.body_preview, "b" * 10000)
        self.assertNotIn(TRUNCATION_MARKER, result.body_preview)

    def test_image_body_is_binary(self):
        """Test an image body is replaced by a placeholder and a hex dump"""
        result = self.run_spec("/png")

        self.assertTrue(result.is_binary)
        self.assertEqual(result.body, "[二进制数据 - 80 字节]")
        self.assertEqual(result.body_size, 80)
        self.assertTrue(result.body_preview.startswith("Content-Type: image/png\n"))
        self.assertIn("0000: 89 50 4e 47", result.body_preview)
        self.assertIn("0030: ", result.body_preview)
        self.assertNotIn("0040: ", result.body_preview)
        self.assertTrue(result.body_preview.endswith("...\n"))

    def test_invalid_utf8_is_binary(self):
        """Test a text content type with undecodable bytes is still binary"""
        result = self.run_spec("/latin1")

        self.assertTrue(result.is_binary)
        self.assertEqual(result.body, "[二进制数据 - 4 字节]")
        self.assertIn("📁", result.body_preview)

    def test_head_method_skips_body(self):
        """Test HEAD reports the declared length without reading a body"""
        result = self.run_spec("/head", method="head")

        self.assertEqual(result.method, "HEAD")
        self.assertEqual(result.body, HEAD_BODY_PLACEHOLDER)
        self.assertEqual(result.body_preview, HEAD_BODY_PLACEHOLDER)
        self.assertEqual(result.body_size, 1234)
        self.assertEqual(result.content_length, 1234)
        self.assertFalse(result.is_binary)
        self.assertEqual(ProbeHandler.hits, [("HEAD", "/head")])

    def test_head_only_get_skips_body(self):
        result = self.run_spec("/text", head_only=True)

        self.assertEqual(result.method, "GET")
        self.assertEqual(result.body, HEAD_BODY_PLACEHOLDER)
        self.assertEqual(result.body_size, 11)

    def test_redirect_not_followed(self):
        """Test the first 3xx is returned as-is without a second request"""
        result = self.run_spec("/redirect/3", follow_redirects=False)

        self.assertEqual(result.status_code, 302)
        self.assertEqual(result.headers["Location"], "/redirect/2")
        self.assertEqual(result.redirect_chain, [])
        self.assertEqual(ProbeHandler.hits, [("GET", "/redirect/3")])
        self.assertNotIn("redirect_chain", result.to_dict())

    def test_redirect_chain_is_recorded(self):
        """Test each visited URL is appended in order"""
        result = self.run_spec("/redirect/3")

        self.assertEqual(result.status_code, 200)
        self.assertEqual(result.body, "done")
        self.assertEqual(result.redirect_chain, [
            f"{self.base}/redirect/2",
            f"{self.base}/redirect/1",
            f"{self.base}/redirect/0",
        ])
        self.assertEqual(result.request_info.final_url, f"{self.base}/redirect/0")

    def test_ten_redirects_are_allowed(self):
        result = self.run_spec("/redirect/10")

        self.assertEqual(result.status_code, 200)
        self.assertEqual(len(result.redirect_chain), 10)

    def test_eleven_redirects_fail(self):
        with self.assertRaises(TooManyRedirects):
            self.run_spec("/redirect/11")

    def test_default_user_agent_injected(self):
        result = self.run_spec("/ua")

        self.assertEqual(result.body, DEFAULT_USER_AGENT)
        self.assertEqual(result.request_info.request_headers["User-Agent"], DEFAULT_USER_AGENT)

    def test_caller_user_agent_kept(self):
        result = self.run_spec("/ua", headers={"user-agent": "probe/2"})

        self.assertEqual(result.body, "probe/2")
        self.assertEqual(result.request_info.request_headers, {"user-agent": "probe/2"})

    def test_post_body_sent(self):
        result = self.run_spec("/echo", method="POST", body="hi",
                               headers={"Content-Type": "text/plain"})

        self.assertFalse(result.is_binary)
        self.assertEqual(json.loads(result.body), {
            "method": "POST", "body": "hi", "content_type": "text/plain",
        })

    def test_multi_valued_headers_joined(self):
        result = self.run_spec("/multi")

        self.assertEqual(result.headers["X-Multi"], "a, b")

    def test_request_info(self):
        result = self.run_spec("/text")
        info = result.request_info

        self.assertEqual(info.final_url, f"{self.base}/text")
        self.assertEqual(info.protocol, "HTTP/1.1")
        self.assertIsNone(info.tls_version)
        self.assertTrue(info.remote_addr.startswith("127.0.0.1:"))
        self.assertNotIn("tls_version", info.to_dict())

    def test_to_dict_is_flat(self):
        data = self.run_spec("/text").to_dict()

        self.assertEqual(data["status_code"], 200)
        self.assertEqual(data["body"], "hello world")
        self.assertNotIn("error", data)
        self.assertEqual(data["request_info"]["protocol"], "HTTP/1.1")
        json.dumps(data)

    def test_timeout(self):
        """Test the deadline cancels a slow exchange"""
        start = time.monotonic()
        with self.assertRaises(Timeout):
            self.run_spec("/slow", timeout=1)
        self.assertLess(time.monotonic() - start, 2.5)

    def test_timeout_during_slow_body(self):
        """Test the deadline cancels a body that arrives one byte at a time"""
        start = time.monotonic()
        with self.assertRaises(Timeout):
            self.run_spec("/drip", timeout=1)
        self.assertLess(time.monotonic() - start, 1.8)

    def test_truncated_body_fails(self):
        """Test a connection closed before the declared length is a read failure"""
        with self.assertRaises(BodyReadFailed) as ctx:
            self.run_spec("/short")
        self.assertEqual(ctx.exception.details["url"], f"{self.base}/short")

    def test_non_latin1_header_value_sent_as_utf8(self):
        result = self.run_spec("/name", headers={"X-Name": "中文"})

        self.assertEqual(result.status_code, 200)
        self.assertEqual(result.body, "中文")
        self.assertEqual(result.request_info.request_headers["X-Name"], "中文")
        json.dumps(result.to_dict())

    def test_non_ascii_header_name_is_request_failed(self):
        with self.assertRaises(RequestFailed):
            self.run_spec("/text", headers={"名字": "value"})

    def test_connection_refused(self):
        with socket.socket() as sock:
            sock.bind(("127.0.0.1", 0))
            port = sock.getsockname()[1]

        with self.assertRaises(RequestFailed) as ctx:
            self.executor.execute(HttpRequestSpec(url=f"http://127.0.0.1:{port}/"))
        self.assertIsNotNone(ctx.exception.__cause__)
        self.assertEqual(ctx.exception.details["url"], f"http://127.0.0.1:{port}/")


class TestHttpsExecutor(unittest.TestCase):
    """Runs against a local TLS server with a self-signed certificate"""

    @classmethod
    def setUpClass(cls):
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.load_cert_chain(os.path.join(DATA_DIR, "localhost.crt"),
                                os.path.join(DATA_DIR, "localhost.key"))
        cls.server = QuietServer(("127.0.0.1", 0), ProbeHandler)
        cls.server.socket = context.wrap_socket(cls.server.socket, server_side=True)
        cls.thread = threading.Thread(target=cls.server.serve_forever, daemon=True)
        cls.thread.start()
        cls.base = f"https://127.0.0.1:{cls.server.server_address[1]}"
        cls.transport = HttpTransport()
        cls.executor = HttpExecutor(cls.transport)

    @classmethod
    def tearDownClass(cls):
        cls.transport.close()
        cls.server.shutdown()
        cls.server.server_close()

    def test_insecure_accepts_self_signed(self):
        """Test skipping verification reaches the server and reports TLS"""
        result = self.executor.execute(HttpRequestSpec(url=self.base + "/text", verify_tls=False))

        self.assertEqual(result.status_code, 200)
        self.assertEqual(result.body, "hello world")
        self.assertIn(result.request_info.tls_version, ("TLS 1.2", "TLS 1.3"))
        self.assertEqual(result.request_info.protocol, "HTTP/1.1")
        self.assertTrue(result.request_info.remote_addr.startswith("127.0.0.1:"))
        self.assertIn("tls_version", result.request_info.to_dict())

    def test_verification_rejects_self_signed(self):
        """Test the default trust policy refuses an unknown certificate"""
        with self.assertRaises(RequestFailed) as ctx:
            self.executor.execute(HttpRequestSpec(url=self.base + "/text"))
        self.assertIsNotNone(ctx.exception.__cause__)

    def test_trust_policies_do_not_share_connections(self):
        self.executor.execute(HttpRequestSpec(url=self.base + "/text", verify_tls=False))

        with self.assertRaises(RequestFailed):
            self.executor.execute(HttpRequestSpec(url=self.base + "/text", verify_tls=True))


class TestDeadline(unittest.TestCase):

    def test_expiry(self):
        with Deadline(0.2) as deadline:
            self.assertFalse(deadline.expired)
            self.assertGreater(deadline.remaining(), 0)
            time.sleep(0.3)
            self.assertTrue(deadline.expired)
            self.assertEqual(deadline.remaining(), 0.0)

    def test_expired_deadline_shuts_down_watched_socket(self):
        sock = mock.Mock()
        response = mock.Mock()
        response.raw.connection.sock = sock

        with Deadline(0.05) as deadline:
            deadline.watch(response)
            time.sleep(0.2)

        sock.shutdown.assert_called_once_with(socket.SHUT_RDWR)

    def test_late_response_is_shut_down_on_arrival(self):
        sock = mock.Mock()
        response = mock.Mock()
        response.raw.connection.sock = sock

        with Deadline(0.05) as deadline:
            time.sleep(0.2)
            deadline.watch(response)

        sock.shutdown.assert_called_once_with(socket.SHUT_RDWR)


class TestNormalizeSpec(unittest.TestCase):

    def test_scheme_defaults_to_https(self):
        bare = normalize_spec(HttpRequestSpec(url="example.com/path?q=1"))
        prefixed = normalize_spec(HttpRequestSpec(url="https://example.com/path?q=1"))

        self.assertEqual(bare.url, "https://example.com/path?q=1")
        self.assertEqual(bare, prefixed)

    def test_host_with_port_gets_scheme(self):
        spec = normalize_spec(HttpRequestSpec(url="example.com:8443/x"))

        self.assertEqual(spec.url, "https://example.com:8443/x")

    def test_defaults(self):
        spec = normalize_spec(HttpRequestSpec(url="http://example.com", method="", timeout=0))

        self.assertEqual(spec.method, "GET")
        self.assertEqual(spec.timeout, 30)
        self.assertFalse(spec.head_only)

    def test_head_forces_head_only(self):
        spec = normalize_spec(HttpRequestSpec(url="http://example.com", method="HEAD", head_only=False))

        self.assertTrue(spec.head_only)

    def test_invalid_urls(self):
        for url in ("", "http://[::1", "ftp://example.com/file", "http://example.com:notaport/"):
            with self.subTest(url=url):
                with self.assertRaises(InvalidURL):
                    normalize_spec(HttpRequestSpec(url=url))

    def test_caller_spec_not_mutated(self):
        original = HttpRequestSpec(url="example.com", method="head")
        normalize_spec(original)

        self.assertEqual(original.url, "example.com")
        self.assertFalse(original.head_only)


class TestTlsLabels(unittest.TestCase):

    def test_known_codes(self):
        self.assertEqual(tls_version_label(0x0301), "TLS 1.0")
        self.assertEqual(tls_version_label(0x0302), "TLS 1.1")
        self.assertEqual(tls_version_label(0x0303), "TLS 1.2")
        self.assertEqual(tls_version_label(0x0304), "TLS 1.3")

    def test_unknown_code_is_hex(self):
        self.assertEqual(tls_version_label(0x0305), "TLS 0x0305")
        self.assertEqual(tls_version_label(0x7F1C), "TLS 0x7f1c")

    def test_ssl_protocol_names(self):
        self.assertEqual(negotiated_tls_label("TLSv1"), "TLS 1.0")
        self.assertEqual(negotiated_tls_label("TLSv1.2"), "TLS 1.2")
        self.assertEqual(negotiated_tls_label("TLSv1.3"), "TLS 1.3")
        self.assertEqual(negotiated_tls_label("QUICv9"), "QUICv9")
        self.assertIsNone(negotiated_tls_label(None))


class TestHttpTransport(unittest.TestCase):

    def test_one_session_per_trust_policy(self):
        with HttpTransport() as transport:
            secure = transport.session(True)
            insecure = transport.session(False)

            self.assertIs(transport.session(True), secure)
            self.assertIsNot(secure, insecure)
            self.assertTrue(secure.verify)
            self.assertFalse(insecure.verify)
            self.assertFalse(secure.trust_env)
            self.assertEqual(secure.max_redirects, 10)
            self.assertEqual(len(secure.headers), 0)


if __name__ == "__main__":
    unittest.main()

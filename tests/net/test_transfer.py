"""
Tests for src/fetcher/net/transfer.py

Covers:
- Body streamed into the staging file, digest over the same bytes
- Credential passed unmodified, timeout always set
- HTTP status / transport error classification
- Mid-stream failures are terminal and leave no file at the staging path
- The body reader is closed as soon as the sink gives up
"""

import asyncio
import hashlib
import socket
import tempfile
import unittest
from pathlib import Path
from urllib.error import URLError

from src.fetcher.errors import (
    ArtifactTooLarge,
    ClientFailure,
    IncompleteBody,
    ServerFailure,
    TransportFailure,
)
from src.fetcher.net.transfer import TransferDriver
from tests.http_fakes import FakeResponse, ScriptedOpener

URL = "https://example/pkg-1.0.0.tgz"


class TestTransferDriver(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.staging_path = Path(self._tmp.name) / "pkg-1.0.0.tgz"

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _attempt(self, driver: TransferDriver, **kwargs):
        return asyncio.run(driver.attempt(URL, self.staging_path, **kwargs))

    def test_success_writes_body_and_returns_digest(self) -> None:
        body = b"tarball-bytes" * 10000
        opener = ScriptedOpener(body)
        driver = TransferDriver(opener=opener, chunk_size=4096)

        result = self._attempt(driver)

        self.assertEqual(result.status, 200)
        self.assertEqual(result.digest, hashlib.sha1(body).hexdigest())
        self.assertEqual(result.size, len(body))
        self.assertEqual(self.staging_path.read_bytes(), body)
        self.assertTrue(opener.responses[0].closed)
        self.assertTrue(all(size == 4096 for size in opener.responses[0].read_sizes))

    def test_empty_body(self) -> None:
        driver = TransferDriver(opener=ScriptedOpener(b""))

        result = self._attempt(driver)

        self.assertEqual(result.size, 0)
        self.assertEqual(result.digest, hashlib.sha1(b"").hexdigest())
        self.assertTrue(self.staging_path.exists())

    def test_credential_passed_unmodified_and_timeout_set(self) -> None:
        opener = ScriptedOpener(b"x")
        driver = TransferDriver(opener=opener, timeout_s=12.5, user_agent="agent/1")

        self._attempt(driver, credential="Bearer s3cr3t")

        request = opener.requests[0]
        self.assertEqual(request.get_header("Authorization"), "Bearer s3cr3t")
        self.assertEqual(request.get_header("User-agent"), "agent/1")
        self.assertEqual(request.get_method(), "GET")
        self.assertEqual(opener.timeouts, [12.5])

    def test_no_credential_no_authorization_header(self) -> None:
        opener = ScriptedOpener(b"x")

        self._attempt(TransferDriver(opener=opener))

        self.assertIsNone(opener.requests[0].get_header("Authorization"))

    def test_404_is_client_failure(self) -> None:
        with self.assertRaises(ClientFailure) as ctx:
            self._attempt(TransferDriver(opener=ScriptedOpener(404)))

        self.assertEqual(ctx.exception.status_code, 404)
        self.assertFalse(self.staging_path.exists())

    def test_408_and_500_are_server_failures(self) -> None:
        for status in (408, 500):
            with self.subTest(status=status):
                with self.assertRaises(ServerFailure) as ctx:
                    self._attempt(TransferDriver(opener=ScriptedOpener(status)))
                self.assertTrue(ctx.exception.should_retry)

    def test_non_2xx_response_object_is_classified(self) -> None:
        response = FakeResponse(b"", status=304, reason="Not Modified")

        with self.assertRaises(ClientFailure):
            self._attempt(TransferDriver(opener=ScriptedOpener(response)))

        self.assertTrue(response.closed)

    def test_no_response_is_transport_failure(self) -> None:
        for exc in (
            URLError("Name or service not known"),
            ConnectionRefusedError("refused"),
            socket.timeout("timed out"),
        ):
            with self.subTest(exc=type(exc).__name__):
                with self.assertRaises(TransportFailure) as ctx:
                    self._attempt(TransferDriver(opener=ScriptedOpener(exc)))
                self.assertIsNone(ctx.exception.status_code)
                self.assertTrue(ctx.exception.should_retry)

    def test_connection_reset_mid_body_is_terminal(self) -> None:
        response = FakeResponse(b"a" * 50000, fail_after=8192)
        driver = TransferDriver(opener=ScriptedOpener(response), chunk_size=4096)

        with self.assertRaises(IncompleteBody) as ctx:
            self._attempt(driver)

        self.assertEqual(ctx.exception.status_code, 200)
        self.assertFalse(ctx.exception.should_retry)
        self.assertFalse(self.staging_path.exists())
        self.assertEqual(list(self.staging_path.parent.iterdir()), [])
        self.assertTrue(response.closed)

    def test_max_bytes_enforced(self) -> None:
        driver = TransferDriver(opener=ScriptedOpener(b"b" * 10000), max_bytes=4096, chunk_size=1024)

        with self.assertRaises(ArtifactTooLarge):
            self._attempt(driver)

        self.assertFalse(self.staging_path.exists())

    def test_body_reader_closed_when_sink_fails(self) -> None:
        closed = []

        class TrackingDriver(TransferDriver):
            async def _iter_body(self, response, url, status):
                try:
                    async for chunk in super()._iter_body(response, url, status):
                        yield chunk
                finally:
                    closed.append(True)

        driver = TrackingDriver(opener=ScriptedOpener(b"b" * 10000), max_bytes=4096, chunk_size=1024)

        async def run_attempt():
            try:
                await driver.attempt(URL, self.staging_path)
            except ArtifactTooLarge:
                # checked before the loop gets a chance to finalize stray generators
                return list(closed)
            return None

        self.assertEqual(asyncio.run(run_attempt()), [True])

    def test_invalid_timeout_rejected(self) -> None:
        with self.assertRaises(ValueError):
            TransferDriver(timeout_s=0)


if __name__ == "__main__":
    unittest.main()

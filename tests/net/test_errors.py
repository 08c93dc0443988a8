import unittest

from src.fetcher.errors import (
    ClientFailure,
    DigestMismatch,
    ImportFailure,
    IncompleteBody,
    ServerFailure,
    TransportFailure,
    classify_http_status,
)


class TestClassifyHttpStatus(unittest.TestCase):
    def test_408_and_5xx_are_server_failures(self) -> None:
        for status in (408, 500, 503, 504):
            exc = classify_http_status(status, "https://example/pkg-1.0.0.tgz")
            self.assertIsInstance(exc, ServerFailure)
            self.assertTrue(exc.should_retry)
            self.assertEqual(exc.status_code, status)

    def test_other_statuses_are_client_failures(self) -> None:
        for status in (301, 400, 401, 403, 404, 410, 429):
            exc = classify_http_status(status, "https://example/pkg-1.0.0.tgz", "Nope")
            self.assertIsInstance(exc, ClientFailure)
            self.assertFalse(exc.should_retry)
            self.assertIn(str(status), str(exc))

    def test_transport_failure_has_no_status(self) -> None:
        exc = TransportFailure("no response", url="https://example/a.tgz")
        self.assertTrue(exc.should_retry)
        self.assertIsNone(exc.status_code)
        self.assertEqual(exc.to_public_dict()["kind"], "transport")

    def test_incomplete_body_after_ok_is_terminal(self) -> None:
        exc = IncompleteBody("reset", url="https://example/a.tgz", status_code=200)
        self.assertFalse(exc.should_retry)
        self.assertEqual(exc.to_public_dict()["kind"], "incomplete_body")
        self.assertEqual(exc.http_status, 502)


class TestDigestMismatch(unittest.TestCase):
    def test_message_names_expected_actual_and_source(self) -> None:
        exc = DigestMismatch(
            url="https://example/pkg-1.0.0.tgz",
            staging_path="/tmp/x",
            expected="abc123",
            actual="def456",
        )
        message = str(exc)
        self.assertIn("Expected: abc123", message)
        self.assertIn("Actual:   def456", message)
        self.assertIn("From:     https://example/pkg-1.0.0.tgz", message)
        self.assertFalse(exc.should_retry)


class TestImportFailure(unittest.TestCase):
    def test_public_dict_keeps_digest(self) -> None:
        exc = ImportFailure("boom", url="https://example/a.tgz", digest="abc")
        data = exc.to_public_dict()
        self.assertEqual(data["kind"], "import")
        self.assertEqual(data["digest"], "abc")
        self.assertEqual(data["url"], "https://example/a.tgz")


if __name__ == "__main__":
    unittest.main()

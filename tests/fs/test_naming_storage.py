import hashlib
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from src.fetcher.fs.naming import cache_filename, host_component, key_hash
from src.fetcher.fs.storage import CacheStorage


def _h(url: str) -> str:
    return hashlib.sha1(url.encode("utf-8")).hexdigest()[:16]


class TestCacheFilename(unittest.TestCase):
    def test_host_and_path(self) -> None:
        url = "https://registry.example.org/pkg/-/pkg-1.0.0.tgz"
        path = cache_filename("/cache", url)
        self.assertEqual(path, Path(f"/cache/registry.example.org/pkg/-/pkg-1.0.0.tgz_{_h(url)}"))
        self.assertEqual(key_hash(url), _h(url))

    def test_port_and_userinfo(self) -> None:
        url = "http://user:pw@localhost:8080/a.tgz"
        path = cache_filename("/cache", url)
        self.assertEqual(path, Path(f"/cache/localhost_8080/a.tgz_{_h(url)}"))
        self.assertNotIn("pw", str(path.parent))
        self.assertEqual(host_component("http://localhost:8080/a.tgz"), "localhost_8080")

    def test_traversal_segments_dropped(self) -> None:
        url = "https://example/../../etc/./passwd"
        path = cache_filename("/cache", url)
        self.assertEqual(path, Path(f"/cache/example/etc/passwd_{_h(url)}"))

    def test_bare_host(self) -> None:
        url = "https://example"
        self.assertEqual(cache_filename("/cache", url), Path(f"/cache/example/__{_h(url)}"))

    def test_query_keeps_keys_apart(self) -> None:
        a = cache_filename("/cache", "https://example/pkg.tgz?token=1")
        b = cache_filename("/cache", "https://example/pkg.tgz?token=2")
        plain = cache_filename("/cache", "https://example/pkg.tgz")
        self.assertNotEqual(a, b)
        self.assertNotEqual(a, plain)
        self.assertTrue(a.name.startswith("pkg.tgz_"))

    def test_keys_folded_by_sanitizing_stay_apart(self) -> None:
        pairs = [
            ("http://r.example/pkg.tgz", "https://r.example/pkg.tgz"),
            ("https://r.example/a%20b.tgz", "https://r.example/a_b.tgz"),
            ("https://R.EXAMPLE/pkg.tgz", "https://r.example/pkg.tgz"),
        ]
        for first, second in pairs:
            with self.subTest(first=first, second=second):
                self.assertNotEqual(cache_filename("/cache", first), cache_filename("/cache", second))

    def test_deterministic(self) -> None:
        url = "https://example/@scope/pkg/-/pkg-2.0.0.tgz"
        self.assertEqual(cache_filename("/c", url), cache_filename("/c", url))

    def test_missing_host_rejected(self) -> None:
        with self.assertRaises(ValueError):
            cache_filename("/cache", "file:///tmp/a.tgz")


class TestCacheStorage(unittest.TestCase):
    def test_layout(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            storage = CacheStorage(Path(tmpdir))
            url = "https://example/pkg-1.0.0.tgz"
            staging = storage.staging_path_for(url)

            self.assertEqual(staging, storage.cache_root / "_staging" / "example" / f"pkg-1.0.0.tgz_{_h(url)}")
            self.assertEqual(
                storage.artifact_path_for("abcdef"),
                storage.cache_root / "_artifacts" / "ab" / "abcdef.tgz",
            )

    def test_ensure_staging_dir(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            storage = CacheStorage(Path(tmpdir))
            staging = storage.staging_path_for("https://example/a/b/c.tgz")

            storage.ensure_staging_dir(staging)

            self.assertTrue(staging.parent.is_dir())
            self.assertFalse(staging.exists())

    def test_remove_staging_removes_file_and_temp_siblings(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            storage = CacheStorage(Path(tmpdir))
            staging = storage.staging_path_for("https://example/pkg.tgz")
            storage.ensure_staging_dir(staging)
            staging.write_bytes(b"done")
            (staging.parent / f".{staging.name}.abc123.tmp").write_bytes(b"partial")
            (staging.parent / "other.tgz").write_bytes(b"keep")

            self.assertTrue(storage.remove_staging(staging))

            self.assertEqual(sorted(p.name for p in staging.parent.iterdir()), ["other.tgz"])

    def test_remove_staging_missing_is_fine(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            storage = CacheStorage(Path(tmpdir))
            self.assertTrue(storage.remove_staging(storage.staging_path_for("https://example/x.tgz")))

    def test_remove_staging_directory(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            storage = CacheStorage(Path(tmpdir))
            staging = storage.staging_path_for("https://example/unpacked")
            (staging / "package").mkdir(parents=True)
            (staging / "package" / "index.js").write_text("x", encoding="utf-8")

            self.assertTrue(storage.remove_staging(staging))
            self.assertFalse(staging.exists())

    def test_remove_staging_failure_is_logged_not_raised(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            storage = CacheStorage(Path(tmpdir))
            staging = storage.staging_path_for("https://example/pkg.tgz")
            storage.ensure_staging_dir(staging)
            staging.write_bytes(b"x")

            with mock.patch.object(Path, "unlink", side_effect=PermissionError("denied")):
                with self.assertLogs("src.fetcher.fs.storage", level="WARNING"):
                    self.assertFalse(storage.remove_staging(staging))


if __name__ == "__main__":
    unittest.main()

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path
from unittest import mock

import requests

from qm_ingest.errors import NetworkError, NotFoundError
from qm_ingest.fetcher import download_file, download_suffix, fetch_source, is_remote_source

from qm_fixtures import FakeResponse, FakeSession

BASE = "https://sharepoint.example.com"


class DownloadFileTests(unittest.TestCase):
    def tearDown(self):
        for path in getattr(self, "_downloads", []):
            Path(path).unlink(missing_ok=True)

    def _track(self, path: Path) -> Path:
        self._downloads = getattr(self, "_downloads", []) + [path]
        return path

    def test_redirect_is_followed_to_the_body(self):
        session = FakeSession(
            {
                f"{BASE}/share/qm": FakeResponse(302, headers={"Location": f"{BASE}/files/qm.xlsx"}),
                f"{BASE}/files/qm.xlsx": FakeResponse(200, b"PK-workbook-bytes"),
            }
        )
        path = self._track(download_file(f"{BASE}/share/qm", {"Cookie": "FedAuth=1"}, session=session))

        self.assertEqual(path.read_bytes(), b"PK-workbook-bytes")
        self.assertTrue(path.name.startswith("qm_"))
        self.assertEqual(path.suffix, ".xlsx")
        self.assertEqual([call["url"] for call in session.calls], [f"{BASE}/share/qm", f"{BASE}/files/qm.xlsx"])

    def test_headers_and_no_auto_redirect_on_every_hop(self):
        session = FakeSession(
            {
                f"{BASE}/a": FakeResponse(301, headers={"Location": f"{BASE}/b"}),
                f"{BASE}/b": FakeResponse(307, headers={"Location": f"{BASE}/c.xlsx"}),
                f"{BASE}/c.xlsx": FakeResponse(200, b"data"),
            }
        )
        self._track(download_file(f"{BASE}/a", {"Cookie": "rtFa=2"}, session=session, timeout=5))

        self.assertEqual(len(session.calls), 3)
        for call in session.calls:
            self.assertEqual(call["headers"], {"Cookie": "rtFa=2"})
            self.assertFalse(call["allow_redirects"])
            self.assertEqual(call["timeout"], 5)

    def test_relative_location_is_resolved_against_current_url(self):
        session = FakeSession(
            {
                f"{BASE}/sites/qm/link": FakeResponse(302, headers={"Location": "/sites/qm/Abschluesse.xlsx"}),
                f"{BASE}/sites/qm/Abschluesse.xlsx": FakeResponse(200, b"ok"),
            }
        )
        path = self._track(download_file(f"{BASE}/sites/qm/link", session=session))
        self.assertEqual(path.read_bytes(), b"ok")

    def test_error_status_raises_network_error_with_status(self):
        session = FakeSession({})
        with self.assertRaises(NetworkError) as ctx:
            download_file(f"{BASE}/missing.xlsx", session=session)
        self.assertEqual(ctx.exception.status_code, 404)
        self.assertIn("404", str(ctx.exception))

    def test_forbidden_after_redirect_raises(self):
        session = FakeSession(
            {
                f"{BASE}/a": FakeResponse(302, headers={"Location": f"{BASE}/login"}),
                f"{BASE}/login": FakeResponse(403),
            }
        )
        with self.assertRaises(NetworkError) as ctx:
            download_file(f"{BASE}/a", session=session)
        self.assertEqual(ctx.exception.status_code, 403)

    def test_redirect_without_location_raises(self):
        session = FakeSession({f"{BASE}/a": FakeResponse(302)})
        with self.assertRaisesRegex(NetworkError, "without a Location"):
            download_file(f"{BASE}/a", session=session)

    def test_redirect_loop_is_capped(self):
        session = FakeSession(
            {
                f"{BASE}/a": FakeResponse(302, headers={"Location": f"{BASE}/b"}),
                f"{BASE}/b": FakeResponse(302, headers={"Location": f"{BASE}/a"}),
            }
        )
        with self.assertRaisesRegex(NetworkError, "Too many redirects"):
            download_file(f"{BASE}/a", session=session, max_redirects=3)
        self.assertEqual(len(session.calls), 4)

    def test_declared_size_over_limit_is_rejected_before_download(self):
        session = FakeSession({f"{BASE}/big.xlsx": FakeResponse(200, b"x" * 10, headers={"Content-Length": "999999"})})
        with mock.patch("qm_ingest.fetcher.tempfile.mkstemp") as mkstemp:
            with self.assertRaisesRegex(NetworkError, "larger than"):
                download_file(f"{BASE}/big.xlsx", session=session, max_bytes=1024)
        mkstemp.assert_not_called()

    def test_streamed_size_over_limit_removes_partial_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            session = FakeSession({f"{BASE}/big.xlsx": FakeResponse(200, b"x" * 4096)})
            with mock.patch("qm_ingest.fetcher.tempfile.tempdir", tmpdir):
                with self.assertRaisesRegex(NetworkError, "larger than"):
                    download_file(f"{BASE}/big.xlsx", session=session, max_bytes=1024)
            self.assertEqual(list(Path(tmpdir).iterdir()), [])

    def test_transport_failure_becomes_network_error(self):
        session = mock.Mock()
        session.get.side_effect = requests.ConnectionError("connection refused")
        with self.assertRaisesRegex(NetworkError, "connection refused"):
            download_file(f"{BASE}/qm.xlsx", session=session)

    def test_response_is_closed_after_each_hop(self):
        first = FakeResponse(302, headers={"Location": f"{BASE}/qm.xlsx"})
        second = FakeResponse(200, b"body")
        session = FakeSession({f"{BASE}/a": first, f"{BASE}/qm.xlsx": second})
        self._track(download_file(f"{BASE}/a", session=session))
        self.assertTrue(first.closed)
        self.assertTrue(second.closed)


class FetchSourceTests(unittest.TestCase):
    def test_local_path_is_returned_unchanged(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "qm.xlsx"
            path.write_bytes(b"x")
            self.assertEqual(fetch_source(str(path)), path)
            self.assertEqual(fetch_source(path), path)

    def test_missing_local_path_raises_not_found(self):
        with self.assertRaisesRegex(NotFoundError, "QM file not found"):
            fetch_source("/does/not/exist.xlsx")

    def test_not_found_is_also_a_file_not_found_error(self):
        with self.assertRaises(FileNotFoundError):
            fetch_source("/does/not/exist.xlsx")

    def test_remote_source_is_downloaded(self):
        session = FakeSession({f"{BASE}/export.csv": FakeResponse(200, b"Projekt;Agent\n")})
        path = fetch_source(f"{BASE}/export.csv", {"Cookie": "c"}, session=session)
        try:
            self.assertEqual(path.suffix, ".csv")
            self.assertEqual(path.read_bytes(), b"Projekt;Agent\n")
        finally:
            path.unlink(missing_ok=True)

    def test_source_helpers(self):
        self.assertTrue(is_remote_source("HTTPS://example.com/qm.xlsx"))
        self.assertFalse(is_remote_source("qm.xlsx"))
        self.assertFalse(is_remote_source(Path("http:/qm.xlsx")))
        self.assertEqual(download_suffix(f"{BASE}/download.aspx?id=1"), ".xlsx")
        self.assertEqual(download_suffix(f"{BASE}/QM.XLS"), ".xls")


if __name__ == "__main__":
    unittest.main()

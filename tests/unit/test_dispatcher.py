"""
Unit tests for the request dispatcher (routing + callback contract)
"""

import json
import threading
import time
from unittest.mock import Mock, patch

from requests.structures import CaseInsensitiveDict

from common.errors import ArchiveOpenError, MalformedTileURLError, RemoteStatusError
from common.types import ResourceKind, TileRequest, TileResult
from tilesource.dispatcher import RequestDispatcher
from tests.conftest import CallbackRecorder, png_tile


def _response(status=200, content=b"", headers=None):
    r = Mock()
    r.status_code = status
    r.content = content
    r.headers = CaseInsensitiveDict(headers or {})
    return r


class TestRouting:
    """Test cases for request classification"""

    def test_local_source_returns_tilejson(self, archive_dir, recorder):
        """Test a local source request is answered with TileJSON"""
        RequestDispatcher(str(archive_dir)).handle(TileRequest("mbtiles://parks", ResourceKind.SOURCE), recorder)
        err, result = recorder.wait()
        assert err is None
        assert json.loads(result.data)["tiles"] == ["mbtiles://parks/{z}/{x}/{y}"]

    def test_remote_source_is_not_handled(self, recorder):
        """Test a remote source request gets no callback"""
        with patch("requests.get") as mock_get:
            RequestDispatcher("/tmp").handle(TileRequest("https://example.com/tiles.json", ResourceKind.SOURCE), recorder)
            time.sleep(0.2)
            mock_get.assert_not_called()
        assert recorder.calls == []

    def test_other_kinds_are_ignored(self, archive_dir, recorder):
        """Test request kinds other than source and tile are ignored"""
        d = RequestDispatcher(str(archive_dir))
        d.handle(TileRequest("mbtiles://parks/0/0/0", ResourceKind.STYLE), recorder)
        d.handle(TileRequest("https://example.com/glyphs/0-255.pbf", ResourceKind.GLYPHS), recorder)
        d.handle(TileRequest("mbtiles://parks/0/0/0", 99), recorder)
        time.sleep(0.2)
        assert recorder.calls == []

    def test_local_tile_present(self, archive_dir, recorder):
        """Test a stored local tile is returned with its bytes"""
        RequestDispatcher(str(archive_dir)).handle(TileRequest("mbtiles://parks/1/0/0", ResourceKind.TILE), recorder)
        err, result = recorder.wait()
        assert err is None
        assert result.data == png_tile((0, 255, 0, 255))

    def test_local_tile_absent_is_empty_not_error(self, archive_dir, recorder):
        """Test an absent local tile yields empty data and no error"""
        RequestDispatcher(str(archive_dir)).handle(TileRequest("mbtiles://parks/1/1/1", ResourceKind.TILE), recorder)
        err, result = recorder.wait()
        assert err is None
        assert result.data == b""

    def test_missing_archive_is_error_not_empty(self, tmp_path, recorder):
        """Test a missing archive file is reported as an error"""
        RequestDispatcher(str(tmp_path)).handle(TileRequest("mbtiles://ghost/0/0/0", ResourceKind.TILE), recorder)
        err, result = recorder.wait()
        assert isinstance(err, ArchiveOpenError)
        assert result is None

    def test_malformed_tile_url_is_error(self, archive_dir, recorder):
        """Test a tile URL without z/x/y is reported as an error"""
        RequestDispatcher(str(archive_dir)).handle(TileRequest("mbtiles://parks/0/0", ResourceKind.TILE), recorder)
        err, _ = recorder.wait()
        assert isinstance(err, MalformedTileURLError)

    @patch("tilesource.archive.get_tile")
    @patch("requests.get")
    def test_remote_tile_skips_archive(self, mock_get, mock_archive_tile, recorder):
        """Test a remote tile URL goes to HTTP and never to the archive"""
        mock_get.return_value = _response(200, b"remote-bytes", {"ETag": "v1"})
        RequestDispatcher("/unused").handle(TileRequest("https://tiles.example.com/3/1/2.png", ResourceKind.TILE), recorder)
        err, result = recorder.wait()
        assert err is None
        assert result.data == b"remote-bytes"
        assert result.etag == "v1"
        mock_archive_tile.assert_not_called()
        mock_get.assert_called_once_with("https://tiles.example.com/3/1/2.png")

    @patch("requests.get")
    def test_remote_404_message(self, mock_get, recorder):
        """Test a remote 404 surfaces the service's message"""
        mock_get.return_value = _response(404, b'{"message":"not found"}')
        RequestDispatcher("/unused").handle(TileRequest("https://tiles.example.com/3/1/2.png", ResourceKind.TILE), recorder)
        err, _ = recorder.wait()
        assert isinstance(err, RemoteStatusError)
        assert str(err) == "not found"

    def test_routing_exception_becomes_callback_error(self, recorder):
        """Test a synchronous routing failure reaches the callback"""
        # url=None breaks classification synchronously
        RequestDispatcher("/tmp").handle(TileRequest(None, ResourceKind.TILE), recorder)  # type: ignore[arg-type]
        assert len(recorder.calls) == 1
        err, result = recorder.calls[0]
        assert isinstance(err, AttributeError)
        assert result is None

    def test_handle_does_not_block(self, archive_dir):
        """Test handle returns before the fetch completes"""
        gate = threading.Event()
        released = []

        def slow_get_tile(base_path, url):
            gate.wait(5.0)
            released.append(url)
            return TileResult(data=b"late")

        rec = CallbackRecorder()
        with patch("tilesource.archive.get_tile", side_effect=slow_get_tile):
            RequestDispatcher(str(archive_dir)).handle(TileRequest("mbtiles://parks/0/0/0", ResourceKind.TILE), rec)
            # returned before the backend finished
            assert rec.calls == []
            gate.set()
            err, result = rec.wait()
        assert err is None and result.data == b"late"

    def test_callable_dispatcher(self, archive_dir, recorder):
        """Test the dispatcher can be called directly as the handler"""
        RequestDispatcher(str(archive_dir))(TileRequest("mbtiles://parks/0/0/0", ResourceKind.TILE), recorder)
        err, result = recorder.wait()
        assert err is None and result.data


class TestConcurrency:
    """Concurrent mixed local/remote dispatch against one dispatcher"""

    @patch("requests.get")
    def test_concurrent_requests_are_independent(self, mock_get, archive_dir):
        """Test concurrent requests each get their own result"""
        def fake_get(url):
            time.sleep(0.01)
            if url.endswith("/missing.png"):
                return _response(404, json.dumps({"message": f"no {url}"}).encode())
            return _response(200, url.encode())

        mock_get.side_effect = fake_get
        dispatcher = RequestDispatcher(str(archive_dir))

        cases = []
        for i in range(10):
            cases.append((f"https://tiles.example.com/{i}/0/0.png", ("ok", f"https://tiles.example.com/{i}/0/0.png".encode())))
            cases.append((f"https://tiles.example.com/{i}/missing.png", ("err", f"no https://tiles.example.com/{i}/missing.png")))
            cases.append(("mbtiles://parks/0/0/0", ("ok", png_tile((255, 0, 0, 255)))))
            cases.append(("mbtiles://parks/1/0/0", ("ok", png_tile((0, 255, 0, 255)))))
            cases.append(("mbtiles://parks/1/1/0", ("ok", b"")))
            cases.append(("mbtiles://ghost/1/1/0", ("open_err", None)))

        recorders = [CallbackRecorder() for _ in cases]
        for (url, _), rec in zip(cases, recorders):
            dispatcher.handle(TileRequest(url, ResourceKind.TILE), rec)

        for (url, (expect, value)), rec in zip(cases, recorders):
            err, result = rec.wait(timeout=10.0)
            assert len(rec.calls) == 1, url
            if expect == "ok":
                assert err is None, url
                assert result.data == value, url
            elif expect == "err":
                assert isinstance(err, RemoteStatusError), url
                assert str(err) == value
            else:
                assert isinstance(err, ArchiveOpenError), url

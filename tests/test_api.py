"""Unit tests for the web uploader HTTP client."""

from urllib.parse import parse_qs

import httpx
import pytest

from retrosync.api import WebUploaderClient
from retrosync.exceptions import (
    RetroSyncClientError,
    RetroSyncConfigError,
    RetroSyncInvalidResponseError,
    RetroSyncNetworkError,
    RetroSyncNotFoundError,
    RetroSyncServerError,
    RetroSyncUploadError,
)


def make_client(handler):
    """Create a client whose requests are answered by ``handler``."""
    client = WebUploaderClient("http://appletv:80/")
    client._client = httpx.Client(transport=httpx.MockTransport(handler))
    return client


class Recorder:
    """Request handler that records requests and replies with a fixed response."""

    def __init__(self, status_code=200, **kwargs):
        self.requests: list[httpx.Request] = []
        self.status_code = status_code
        self.kwargs = kwargs

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, **self.kwargs)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


class TestWebUploaderClient:
    """Tests for client initialization and lifecycle."""

    def test_base_url_is_stripped(self):
        """Test that the trailing slash of the base URL is removed."""
        client = WebUploaderClient("http://appletv:80/")
        assert client.base_url == "http://appletv:80"

    def test_missing_base_url_raises_error(self):
        """Test that an empty base URL is rejected."""
        with pytest.raises(RetroSyncConfigError):
            WebUploaderClient("")

    def test_timeouts_are_applied(self):
        """Test that connect and overall timeouts reach httpx."""
        client = WebUploaderClient("http://appletv", connect_timeout=5, timeout=120)
        http = client._get_client()
        assert http.timeout.connect == 5
        assert http.timeout.read == 120
        client.close()
        assert client._client is None

    def test_context_manager_closes(self):
        """Test that leaving the context closes the httpx client."""
        with WebUploaderClient("http://appletv") as client:
            http = client._get_client()
        assert http.is_closed


class TestListDirectory:
    """Tests for list_directory and directory_exists."""

    def test_list_returns_rows(self):
        """Test listing a directory."""
        rows = [{"name": "game.srm", "path": "/saves/game.srm", "size": 10}]
        handler = Recorder(json=rows)
        client = make_client(handler)

        assert client.list_directory("saves/") == rows
        assert handler.last.method == "GET"
        assert handler.last.url.path == "/list"
        assert handler.last.url.params["path"] == "/saves"

    def test_404_raises_not_found(self):
        """Test that a missing directory raises RetroSyncNotFoundError."""
        client = make_client(Recorder(404))
        with pytest.raises(RetroSyncNotFoundError):
            client.list_directory("/missing")

    def test_non_json_body(self):
        """Test that an HTML error page is an invalid response."""
        client = make_client(Recorder(200, text="<html>oops</html>"))
        with pytest.raises(RetroSyncInvalidResponseError):
            client.list_directory("/saves")

    def test_non_array_body(self):
        """Test that a JSON object instead of an array is rejected."""
        client = make_client(Recorder(200, json={"error": "nope"}))
        with pytest.raises(RetroSyncInvalidResponseError, match="not an array"):
            client.list_directory("/saves")

    def test_directory_exists(self):
        """Test directory_exists maps 200/404 to True/False."""
        assert make_client(Recorder(200, json=[])).directory_exists("/saves")
        assert not make_client(Recorder(404)).directory_exists("/saves")

    def test_directory_exists_other_status_raises(self):
        """Test that directory_exists propagates server errors."""
        with pytest.raises(RetroSyncServerError):
            make_client(Recorder(503)).directory_exists("/saves")


class TestErrorMapping:
    """Tests for status code and transport error mapping."""

    @pytest.mark.parametrize(
        "status_code,exception",
        [
            (400, RetroSyncClientError),
            (403, RetroSyncClientError),
            (404, RetroSyncNotFoundError),
            (500, RetroSyncServerError),
            (502, RetroSyncServerError),
        ],
    )
    def test_status_codes(self, status_code, exception):
        """Test that error statuses raise the matching exception."""
        client = make_client(Recorder(status_code))
        with pytest.raises(exception):
            client.move("/a", "/b")

    def test_connection_error(self):
        """Test that transport errors become RetroSyncNetworkError."""

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        with pytest.raises(RetroSyncNetworkError):
            client.list_directory("/saves")

    def test_timeout(self):
        """Test that timeouts become RetroSyncNetworkError."""

        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_client(handler)
        with pytest.raises(RetroSyncNetworkError):
            client.get_last_modified("/saves/game.srm")


class TestLastModified:
    """Tests for get_last_modified."""

    def test_head_request_parses_header(self):
        """Test that Last-Modified is parsed into epoch seconds."""
        handler = Recorder(headers={"Last-Modified": "Sun, 13 Sep 2020 12:26:40 GMT"})
        client = make_client(handler)

        assert client.get_last_modified("/saves/game.srm") == 1_600_000_000
        assert handler.last.method == "HEAD"
        assert handler.last.url.path == "/download"
        assert handler.last.url.params["path"] == "/saves/game.srm"

    def test_missing_header_is_zero(self):
        """Test that a missing header yields 0."""
        assert make_client(Recorder()).get_last_modified("/saves/game.srm") == 0


class TestDownloadFile:
    """Tests for download_file."""

    def test_download_writes_file(self, tmp_path):
        """Test that the body is streamed into the output file."""
        handler = Recorder(content=b"x" * 200_000)
        client = make_client(handler)
        progress = []
        output = tmp_path / "game.srm.part"

        size = client.download_file(
            "/saves/game.srm", output, lambda done, total: progress.append(done)
        )

        assert size == 200_000
        assert output.read_bytes() == b"x" * 200_000
        assert progress[-1] == 200_000
        assert handler.last.url.params["path"] == "/saves/game.srm"

    def test_download_404(self, tmp_path):
        """Test that a missing remote file raises RetroSyncNotFoundError."""
        client = make_client(Recorder(404))
        with pytest.raises(RetroSyncNotFoundError):
            client.download_file("/saves/missing", tmp_path / "out")


class TestUploadFile:
    """Tests for upload_file."""

    def test_multipart_fields(self, tmp_path):
        """Test that path and files[] are sent as multipart form data."""
        local = tmp_path / "game.srm"
        local.write_bytes(b"save data")
        handler = Recorder()
        client = make_client(handler)

        client.upload_file(local, "/saves", "game.srm.part")

        request = handler.last
        body = request.read()
        assert request.method == "POST"
        assert request.url.path == "/upload"
        assert request.headers["content-type"].startswith("multipart/form-data")
        assert b'name="path"' in body
        assert b"/saves/" in body
        assert b'name="files[]"; filename="game.srm.part"' in body
        assert b"save data" in body

    def test_rejected_upload(self, tmp_path):
        """Test that a rejected upload raises RetroSyncUploadError."""
        local = tmp_path / "game.srm"
        local.write_bytes(b"x")
        client = make_client(Recorder(500))

        with pytest.raises(RetroSyncUploadError) as exc_info:
            client.upload_file(local, "/saves", "game.srm.part")
        assert isinstance(exc_info.value.__cause__, RetroSyncServerError)


class TestTreeOperations:
    """Tests for move, create_directory and delete."""

    def test_move(self):
        """Test that move posts oldPath and newPath."""
        handler = Recorder()
        make_client(handler).move("/saves/a.srm", "saves/a.srm.old")

        form = parse_qs(handler.last.read().decode())
        assert handler.last.url.path == "/move"
        assert form == {"oldPath": ["/saves/a.srm"], "newPath": ["/saves/a.srm.old"]}

    def test_create_directory(self):
        """Test that create posts the directory path."""
        handler = Recorder()
        make_client(handler).create_directory("/saves/snes/")

        assert handler.last.url.path == "/create"
        assert parse_qs(handler.last.read().decode()) == {"path": ["/saves/snes"]}

    def test_delete(self):
        """Test that delete posts the path."""
        handler = Recorder()
        make_client(handler).delete("/saves/a.srm.part")

        assert handler.last.url.path == "/delete"
        assert parse_qs(handler.last.read().decode()) == {"path": ["/saves/a.srm.part"]}

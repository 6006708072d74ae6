"""HTTP client for GCDWebUploader-style file services."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import httpx

from .exceptions import (
    RetroSyncAPIError,
    RetroSyncClientError,
    RetroSyncConfigError,
    RetroSyncInvalidResponseError,
    RetroSyncLocalError,
    RetroSyncNetworkError,
    RetroSyncNotFoundError,
    RetroSyncServerError,
    RetroSyncUploadError,
)
from .utils import DEFAULT_CHUNK_SIZE, normalize_remote_path, parse_http_date


class WebUploaderClient:
    """Client for the list/download/upload/move/create endpoints.

    Each method performs exactly one HTTP request and raises a
    RetroSyncAPIError subclass on failure; retrying is left to the caller
    so it can re-probe the host between attempts.
    """

    def __init__(
        self,
        base_url: str,
        connect_timeout: float = 5.0,
        timeout: float = 120.0,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        """Initialize the client.

        Args:
            base_url: Base URL of the service (e.g., "http://192.168.1.41:80")
            connect_timeout: Seconds allowed to establish a connection
            timeout: Seconds allowed for a whole operation
            chunk_size: Streaming chunk size for downloads
        """
        if not base_url:
            raise RetroSyncConfigError("Remote base URL not configured")

        self.base_url = base_url.rstrip("/")
        self.connect_timeout = connect_timeout
        self.timeout = timeout
        self.chunk_size = chunk_size
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                timeout=httpx.Timeout(self.timeout, connect=self.connect_timeout),
                follow_redirects=True,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def __enter__(self) -> WebUploaderClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _url(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def _raise_for_status(self, response: httpx.Response) -> None:
        """Map an error status to the matching exception."""
        status_code = response.status_code
        if status_code < 400:
            return
        try:
            target = f"{response.request.method} {response.request.url}"
        except RuntimeError:
            # Response built without a request (tests, transports)
            target = "request"
        if status_code == 404:
            raise RetroSyncNotFoundError(f"Resource not found: {target}")
        if 500 <= status_code < 600:
            raise RetroSyncServerError(
                f"Server error {status_code} for {target}"
            )
        raise RetroSyncClientError(f"Request rejected with {status_code}: {target}")

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> httpx.Response:
        """Perform a single request.

        Raises:
            RetroSyncNetworkError: On connection problems and timeouts
            RetroSyncAPIError: On error status codes
        """
        client = self._get_client()
        try:
            response = client.request(method, self._url(endpoint), **kwargs)
        except httpx.RequestError as e:
            raise RetroSyncNetworkError(f"Network error: {e}") from e
        self._raise_for_status(response)
        return response

    # =========================
    # Metadata
    # =========================

    def list_directory(self, path: str) -> list[dict[str, Any]]:
        """List the entries of a remote directory.

        Args:
            path: Absolute remote directory path

        Returns:
            Raw listing rows (``name``, ``path`` and optional ``size``)

        Raises:
            RetroSyncNotFoundError: If the directory does not exist
            RetroSyncInvalidResponseError: If the body is not a JSON array
        """
        response = self._request(
            "GET", "/list", params={"path": normalize_remote_path(path)}
        )
        try:
            data = response.json()
        except ValueError as e:
            raise RetroSyncInvalidResponseError(
                f"Invalid JSON listing for {path}"
            ) from e
        if not isinstance(data, list):
            raise RetroSyncInvalidResponseError(
                f"Listing for {path} is not an array: {type(data).__name__}"
            )
        return data

    def directory_exists(self, path: str) -> bool:
        """Check whether a remote directory exists.

        Returns:
            True on HTTP 200, False on HTTP 404

        Raises:
            RetroSyncAPIError: On any other outcome
        """
        try:
            self._request("GET", "/list", params={"path": normalize_remote_path(path)})
        except RetroSyncNotFoundError:
            return False
        return True

    def get_last_modified(self, path: str) -> int:
        """Read a remote file's Last-Modified header.

        Returns:
            Epoch seconds, or 0 if the header is missing or unparseable
        """
        response = self._request(
            "HEAD", "/download", params={"path": normalize_remote_path(path)}
        )
        return parse_http_date(response.headers.get("Last-Modified"))

    # =========================
    # Transfers
    # =========================

    def download_file(
        self,
        path: str,
        output_path: Path,
        progress_callback: Callable[[int, int], None] | None = None,
    ) -> int:
        """Stream a remote file into a local file.

        Args:
            path: Absolute remote file path
            output_path: Local file to write (truncated first)
            progress_callback: Optional callback(bytes_downloaded, total_bytes)

        Returns:
            Number of bytes written

        Raises:
            RetroSyncNetworkError: On connection problems and timeouts
            RetroSyncAPIError: On error status codes
            RetroSyncLocalError: If the local file cannot be written
        """
        client = self._get_client()
        bytes_downloaded = 0
        try:
            with client.stream(
                "GET", self._url("/download"), params={"path": normalize_remote_path(path)}
            ) as response:
                self._raise_for_status(response)
                total_size = _content_length(response)
                with open(output_path, "wb") as f:
                    for chunk in response.iter_bytes(chunk_size=self.chunk_size):
                        if chunk:
                            f.write(chunk)
                            bytes_downloaded += len(chunk)
                            if progress_callback:
                                progress_callback(bytes_downloaded, total_size)
        except httpx.RequestError as e:
            raise RetroSyncNetworkError(f"Network error during download: {e}") from e
        except OSError as e:
            raise RetroSyncLocalError(f"Failed to write {output_path}: {e}") from e
        return bytes_downloaded

    def upload_file(self, file_path: Path, directory: str, filename: str) -> None:
        """Upload a local file into a remote directory under a given name.

        Args:
            file_path: Local file to send
            directory: Absolute remote directory
            filename: Name to store the file under

        Raises:
            RetroSyncLocalError: If the local file cannot be read
            RetroSyncUploadError: If the server rejects the upload
            RetroSyncNetworkError: On connection problems and timeouts
        """
        directory = normalize_remote_path(directory)
        target = directory if directory.endswith("/") else directory + "/"
        try:
            with open(file_path, "rb") as f:
                self._request(
                    "POST",
                    "/upload",
                    data={"path": target},
                    files={"files[]": (filename, f, "application/octet-stream")},
                )
        except OSError as e:
            raise RetroSyncLocalError(f"Failed to read {file_path}: {e}") from e
        except (RetroSyncClientError, RetroSyncServerError) as e:
            raise RetroSyncUploadError(f"Upload of {file_path} failed: {e}") from e

    # =========================
    # Tree operations
    # =========================

    def move(self, old_path: str, new_path: str) -> None:
        """Rename a remote file or directory."""
        self._request(
            "POST",
            "/move",
            data={
                "oldPath": normalize_remote_path(old_path),
                "newPath": normalize_remote_path(new_path),
            },
        )

    def create_directory(self, path: str) -> None:
        """Create a remote directory."""
        self._request("POST", "/create", data={"path": normalize_remote_path(path)})

    def delete(self, path: str) -> None:
        """Delete a remote file or directory."""
        self._request("POST", "/delete", data={"path": normalize_remote_path(path)})


def is_transient(error: Exception) -> bool:
    """Whether an error may go away by retrying.

    Connectivity problems, server errors, malformed responses and size
    mismatches are transient; missing objects, rejected requests and local
    filesystem errors are not.
    """
    if isinstance(error, RetroSyncUploadError):
        cause = error.__cause__
        return cause is None or is_transient(cause)
    if isinstance(error, RetroSyncClientError):
        return False
    return isinstance(error, RetroSyncAPIError)


def _content_length(response: httpx.Response) -> int:
    try:
        return int(response.headers.get("Content-Length", 0) or 0)
    except ValueError:
        return 0

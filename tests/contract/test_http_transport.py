from __future__ import annotations

import socket
import threading
from collections import Counter
from collections.abc import Iterator
from http.client import IncompleteRead
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import pytest

from macprovision.errors import RetryExhaustedError
from macprovision.net import github_releases
from macprovision.net.download import download_with_retry, make_fetcher
from macprovision.retry import RecoverableError, RetryPolicy

PAYLOAD = bytes(range(256)) * 1000


class _PackageHandler(BaseHTTPRequestHandler):
    def do_GET(self) -> None:  # noqa: N802
        self.server.hits[self.path] += 1
        if self.path == "/pkgs/tool.pkg":
            self.send_response(200)
            self.send_header("Content-Length", str(len(PAYLOAD)))
            self.end_headers()
            self.wfile.write(PAYLOAD)
        elif self.path == "/pkgs/short.pkg":
            self.send_response(200)
            self.send_header("Content-Length", "1000")
            self.end_headers()
            self.wfile.write(b"0123456789")
            self.close_connection = True
        else:
            self.send_error(404, "Not Found")

    def log_message(self, format: str, *args: object) -> None:
        del format, args


@pytest.fixture(autouse=True)
def _bypass_proxies(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("no_proxy", "*")
    monkeypatch.setenv("NO_PROXY", "*")


@pytest.fixture
def package_server() -> Iterator[ThreadingHTTPServer]:
    server = ThreadingHTTPServer(("127.0.0.1", 0), _PackageHandler)
    server.hits = Counter()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield server
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)


def _url(server: ThreadingHTTPServer, path: str) -> str:
    return f"http://127.0.0.1:{server.server_address[1]}{path}"


def _unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def test_fetcher_streams_ok_response_to_file(package_server: ThreadingHTTPServer, tmp_path: Path) -> None:
    dest = tmp_path / "tool.pkg"

    status = make_fetcher(5)(_url(package_server, "/pkgs/tool.pkg"), dest)

    assert status == 200
    assert dest.read_bytes() == PAYLOAD


def test_fetcher_returns_http_error_status(package_server: ThreadingHTTPServer, tmp_path: Path) -> None:
    status = make_fetcher(5)(_url(package_server, "/pkgs/missing.pkg"), tmp_path / "missing.pkg")

    assert status == 404


def test_fetcher_maps_refused_connection_to_recoverable(tmp_path: Path) -> None:
    url = f"http://127.0.0.1:{_unused_port()}/pkgs/tool.pkg"

    with pytest.raises(RecoverableError):
        make_fetcher(5)(url, tmp_path / "tool.pkg")


def test_fetcher_rejects_body_shorter_than_content_length(package_server: ThreadingHTTPServer, tmp_path: Path) -> None:
    with pytest.raises(RecoverableError) as exc:
        make_fetcher(5)(_url(package_server, "/pkgs/short.pkg"), tmp_path / "short.pkg")

    assert "10 of 1000" in str(exc.value)


def test_truncated_download_exhausts_budget(package_server: ThreadingHTTPServer, tmp_path: Path) -> None:
    with pytest.raises(RetryExhaustedError) as exc:
        download_with_retry(
            _url(package_server, "/pkgs/short.pkg"),
            tmp_path / "short.pkg",
            policy=RetryPolicy(3, 0),
            fetcher=make_fetcher(5),
            sleep=lambda _: None,
        )

    assert exc.value.attempts == 3
    assert package_server.hits["/pkgs/short.pkg"] == 3


def test_download_with_real_fetcher_returns_complete_file(package_server: ThreadingHTTPServer, tmp_path: Path) -> None:
    result = download_with_retry(
        _url(package_server, "/pkgs/tool.pkg"),
        download_dir=tmp_path,
        policy=RetryPolicy(2, 0),
        fetcher=make_fetcher(5),
        sleep=lambda _: None,
    )

    assert result == tmp_path / "tool.pkg"
    assert result.read_bytes() == PAYLOAD
    assert package_server.hits["/pkgs/tool.pkg"] == 1


def test_requester_uses_configured_timeout_and_maps_incomplete_reads(monkeypatch: pytest.MonkeyPatch) -> None:
    timeouts: list[float] = []

    def fake_urlopen(request, timeout):
        timeouts.append(timeout)
        raise IncompleteRead(b"[{", 512)

    monkeypatch.setattr(github_releases, "urlopen", fake_urlopen)
    requester = github_releases.make_requester(5)

    with pytest.raises(RecoverableError):
        requester("https://api.github.com/repos/org/tool/releases", {})
    assert timeouts == [5]


def test_release_listing_retries_incomplete_reads(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = {"count": 0}

    def fake_urlopen(request, timeout):
        calls["count"] += 1
        raise IncompleteRead(b"", 128)

    monkeypatch.setattr(github_releases, "urlopen", fake_urlopen)

    with pytest.raises(RetryExhaustedError):
        github_releases.fetch_releases(
            "org/tool",
            policy=RetryPolicy(2, 0),
            requester=github_releases.make_requester(5),
            sleep=lambda _: None,
        )
    assert calls["count"] == 2

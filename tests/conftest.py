import os
import stat
import threading

import pytest

from staticy.config import build_config
from staticy.models import Request
from staticy.server import ThreadedHTTPServer


@pytest.fixture
def www(tmp_path):
    """A document root with an indexed and an unindexed directory."""
    root = tmp_path / "www"
    (root / "a").mkdir(parents=True)
    (root / "b").mkdir()
    (root / "a" / "index.html").write_text("<h1>a</h1>\n")
    (root / "b" / "notes.txt").write_text("some notes\n")
    (root / "b" / "sub").mkdir()
    return root


def make_request(path, method="GET", headers=None, target=None):
    return Request(
        method=method,
        target=target or path,
        path=path,
        version="HTTP/1.1",
        headers=headers or {},
        client_addr=("127.0.0.1", 5555),
    )


class FakeFile:
    def __init__(self, name, is_dir=False, stat_error=None):
        self.name = name
        self.is_dir = is_dir
        self.stat_error = stat_error
        self.closed = False

    def stat(self):
        if self.stat_error is not None:
            raise self.stat_error
        mode = (stat.S_IFDIR | 0o755) if self.is_dir else (stat.S_IFREG | 0o644)
        return os.stat_result((mode, 0, 0, 1, 0, 0, 0, 0, 0, 0))

    def read(self, size=-1):
        return b""

    def seek(self, offset):
        return offset

    def readdir(self):
        return []

    def close(self):
        self.closed = True


class FakeFileSystem:
    """In-memory store: ``entries`` maps names to FakeFile or an exception."""

    def __init__(self, entries):
        self.entries = entries
        self.opened = []

    def open(self, name):
        entry = self.entries.get(name)
        if entry is None:
            raise FileNotFoundError(name)
        if isinstance(entry, Exception):
            raise entry
        self.opened.append(entry)
        return entry


@pytest.fixture
def serve():
    """Start a server on an ephemeral port; yields a factory taking a docroot."""
    started = []

    def _serve(docroot, no_indexing=False):
        config = build_config(
            docroot=str(docroot),
            listen="127.0.0.1:0",
            no_indexing=no_indexing,
            workers=2,
            accept_timeout=0.05,
        )
        server = ThreadedHTTPServer(config)
        thread = threading.Thread(target=server.run, daemon=True)
        thread.start()
        assert server.ready.wait(5)
        started.append((server, thread))
        return server.server_address

    yield _serve

    for server, thread in started:
        server.stop()
        thread.join(5)

import os
import posixpath
import stat
from typing import BinaryIO, List, Optional, Protocol


class File(Protocol):
    name: str

    def stat(self) -> os.stat_result: ...

    def read(self, size: int = -1) -> bytes: ...

    def seek(self, offset: int) -> int: ...

    def readdir(self) -> List[os.DirEntry]: ...

    def close(self) -> None: ...


class FileSystem(Protocol):
    def open(self, name: str) -> File: ...


class LocalFile:
    """An opened entry of a local directory store.

    Regular files hold an open binary handle. Directories hold nothing but
    their path, and are listed on demand.
    """

    def __init__(self, name: str, path: str) -> None:
        self.name = name
        self.path = path
        self._fh: Optional[BinaryIO] = None
        if not os.path.isdir(path):
            self._fh = open(path, "rb")

    def stat(self) -> os.stat_result:
        if self._fh is not None:
            return os.fstat(self._fh.fileno())
        return os.stat(self.path)

    def read(self, size: int = -1) -> bytes:
        if self._fh is None:
            raise IsADirectoryError(self.path)
        return self._fh.read(size)

    def seek(self, offset: int) -> int:
        if self._fh is None:
            raise IsADirectoryError(self.path)
        return self._fh.seek(offset)

    def readdir(self) -> List[os.DirEntry]:
        if self._fh is not None:
            raise NotADirectoryError(self.path)
        with os.scandir(self.path) as it:
            return sorted(it, key=lambda entry: entry.name)

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def __enter__(self) -> "LocalFile":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class Dir:
    """A FileSystem rooted at a local directory.

    Names are slash-separated and cleaned before being joined to the root,
    and anything resolving outside the root is refused.
    """

    def __init__(self, root: str) -> None:
        self.root_real = os.path.realpath(root)

    def open(self, name: str) -> LocalFile:
        if os.sep != "/" and os.sep in name:
            raise FileNotFoundError(name)
        return LocalFile(name, self._safe_join(name))

    def _safe_join(self, name: str) -> str:
        rel = posixpath.normpath("/" + name).lstrip("/")
        candidate = os.path.join(self.root_real, *rel.split("/")) if rel else self.root_real
        real = os.path.realpath(candidate)

        root_prefix = self.root_real.rstrip(os.sep) + os.sep
        if real != self.root_real and not real.startswith(root_prefix):
            raise PermissionError(f"{name!r} escapes document root")
        return real


class UnindexedFileSystem:
    """A FileSystem that refuses directories without an index.html.

    A directory is only handed out when ``<dir>/index.html`` can be opened,
    in which case the directory itself is returned so the file server serves
    the index the usual way. Any other directory fails with PermissionError,
    whatever the reason the index could not be opened.
    """

    index_name = "index.html"

    def __init__(self, fs: FileSystem) -> None:
        self.fs = fs

    def open(self, name: str) -> File:
        f = self.fs.open(name)
        try:
            st = f.stat()
        except OSError as e:
            f.close()
            raise FileNotFoundError(name) from e

        if not stat.S_ISDIR(st.st_mode):
            return f

        index = name.rstrip("/") + "/" + self.index_name
        try:
            self.fs.open(index).close()
        except OSError as e:
            f.close()
            raise PermissionError(name) from e
        return f

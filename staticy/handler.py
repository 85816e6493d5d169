import logging
import mimetypes
import posixpath
import stat
from datetime import timezone
from email.utils import formatdate, parsedate_to_datetime
from html import escape
from typing import Optional, Tuple
from urllib.parse import quote

from .filesystem import File, FileSystem
from .models import Request, ResponseSpec

log = logging.getLogger(__name__)

INDEX_PAGE = "/index.html"


class RangeNotSatisfiable(Exception):
    pass


class FileHandler:
    """Serves a FileSystem over GET/HEAD.

    Directories are redirected to their slash form, then served through
    their index.html when present and listed otherwise. Store errors map to
    404 (missing), 403 (permission) and 500 (anything else).
    """

    def __init__(self, fs: FileSystem) -> None:
        self.fs = fs

    def handle(self, req: Request) -> ResponseSpec:
        if req.method.upper() not in ("GET", "HEAD"):
            resp = self._text(405, "Method Not Allowed", "405 Method Not Allowed")
            resp.headers["Allow"] = "GET, HEAD"
            return resp

        upath = req.path if req.path.startswith("/") else "/" + req.path

        if upath.endswith(INDEX_PAGE):
            return self._redirect(req, "./")

        name = clean_path(upath)
        try:
            f = self.fs.open(name)
        except OSError as e:
            return self._error_for(e)

        try:
            st = f.stat()
        except OSError as e:
            f.close()
            return self._error_for(e)

        if stat.S_ISDIR(st.st_mode):
            if not upath.endswith("/"):
                f.close()
                return self._redirect(req, posixpath.basename(upath) + "/")
            f, st = self._open_index(name, f, st)
        elif upath.endswith("/"):
            f.close()
            return self._redirect(req, "../" + posixpath.basename(upath.rstrip("/")))

        if stat.S_ISDIR(st.st_mode):
            return self._list_directory(f)
        return self._serve_content(req, f, st)

    def _open_index(self, name: str, f: File, st):
        index = name.rstrip("/") + INDEX_PAGE
        try:
            ff = self.fs.open(index)
        except OSError:
            return f, st
        try:
            dst = ff.stat()
        except OSError:
            ff.close()
            return f, st
        f.close()
        return ff, dst

    def _serve_content(self, req: Request, f: File, st) -> ResponseSpec:
        ctype, _ = mimetypes.guess_type(f.name)
        last_modified = formatdate(st.st_mtime, usegmt=True)
        headers = {
            "Content-Type": ctype or "application/octet-stream",
            "Last-Modified": last_modified,
            "Accept-Ranges": "bytes",
        }

        if _not_modified(req.headers.get("if-modified-since"), st.st_mtime):
            f.close()
            return ResponseSpec(304, "Not Modified", headers={"Last-Modified": last_modified})

        size = st.st_size
        try:
            byte_range = parse_range(req.headers.get("range"), size)
        except RangeNotSatisfiable:
            f.close()
            return ResponseSpec(
                416,
                "Requested Range Not Satisfiable",
                headers={"Content-Range": f"bytes */{size}"},
            )
        except Exception:
            f.close()
            raise

        if byte_range is None:
            return ResponseSpec(200, "OK", headers=headers, body_file=f, body_size=size)

        start, length = byte_range
        headers["Content-Range"] = f"bytes {start}-{start + length - 1}/{size}"
        return ResponseSpec(
            206,
            "Partial Content",
            headers=headers,
            body_file=f,
            body_offset=start,
            body_size=length,
        )

    def _list_directory(self, f: File) -> ResponseSpec:
        try:
            entries = f.readdir()
        except OSError:
            log.exception("Error reading directory %s", f.name)
            return self._text(500, "Internal Server Error", "Error reading directory")
        finally:
            f.close()

        lines = [
            "<!doctype html>",
            '<meta name="viewport" content="width=device-width">',
            "<pre>",
        ]
        for entry in entries:
            name = entry.name + ("/" if entry.is_dir() else "")
            lines.append(f'<a href="{escape(quote(name))}">{escape(name)}</a>')
        lines.append("</pre>")

        return ResponseSpec(
            200,
            "OK",
            headers={"Content-Type": "text/html; charset=utf-8"},
            body=("\n".join(lines) + "\n").encode("utf-8"),
        )

    def _redirect(self, req: Request, location: str) -> ResponseSpec:
        location = quote(location)
        if req.query:
            location += "?" + req.query
        return ResponseSpec(301, "Moved Permanently", headers={"Location": location})

    def _error_for(self, e: OSError) -> ResponseSpec:
        if isinstance(e, (FileNotFoundError, NotADirectoryError)):
            return self._text(404, "Not Found", "404 page not found")
        if isinstance(e, PermissionError):
            return self._text(403, "Forbidden", "403 Forbidden")
        log.error("Unexpected filesystem error: %s", e)
        return self._text(500, "Internal Server Error", "500 Internal Server Error")

    @staticmethod
    def _text(status: int, reason: str, message: str) -> ResponseSpec:
        return ResponseSpec(
            status,
            reason,
            headers={
                "Content-Type": "text/plain; charset=utf-8",
                "X-Content-Type-Options": "nosniff",
            },
            body=(message + "\n").encode("utf-8"),
        )


def clean_path(url_path: str) -> str:
    """Collapse ``.``, ``..`` and repeated slashes. Never climbs above ``/``."""
    return posixpath.normpath("/" + url_path.lstrip("/"))


def parse_range(header: Optional[str], size: int) -> Optional[Tuple[int, int]]:
    """Parse a single ``bytes=`` range into ``(start, length)``.

    Returns None when the whole body should be sent: no header, several
    ranges, or anything malformed.
    """
    if not header or not header.startswith("bytes="):
        return None
    specs = header[len("bytes="):].split(",")
    if len(specs) != 1:
        return None

    first, sep, last = specs[0].strip().partition("-")
    if not sep:
        return None
    first, last = first.strip(), last.strip()

    if not first:
        # suffix range: the final N bytes
        if not _is_digits(last):
            return None
        length = min(int(last), size)
        if length == 0:
            raise RangeNotSatisfiable(header)
        return size - length, length

    if not _is_digits(first):
        return None
    start = int(first)
    if start >= size:
        raise RangeNotSatisfiable(header)
    if not last:
        end = size - 1
    elif _is_digits(last):
        end = min(int(last), size - 1)
        if end < start:
            return None
    else:
        return None
    return start, end - start + 1


def _not_modified(header: Optional[str], mtime: float) -> bool:
    if not header:
        return False
    try:
        since = parsedate_to_datetime(header)
    except (TypeError, ValueError):
        return False
    if since is None:
        return False
    if since.tzinfo is None:
        since = since.replace(tzinfo=timezone.utc)
    return int(mtime) <= since.timestamp()


def _is_digits(s: str) -> bool:
    return s.isascii() and s.isdigit()

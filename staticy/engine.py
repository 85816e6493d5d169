import logging
import socket
from datetime import datetime, timezone
from typing import Tuple
from urllib.parse import unquote

from .dispatch import RequestHandler
from .models import Request, ResponseSpec

log = logging.getLogger(__name__)


class Engine:
    def handle_connection(self, conn: socket.socket, addr: Tuple[str, int]) -> None:
        try:
            self.process(conn, addr)
        finally:
            try:
                conn.close()
            except OSError:
                pass

    def process(self, conn: socket.socket, addr: Tuple[str, int]) -> None:
        raise NotImplementedError


class HTTPEngine(Engine):
    def __init__(self, config, request_handler: RequestHandler, server_name=None) -> None:
        self.config = config
        self.request_handler = request_handler
        if server_name is None:
            server_name = f"staticy/{socket.gethostname()}"
        self.server_name = server_name

    def process(self, conn: socket.socket, addr: Tuple[str, int]) -> None:
        try:
            raw = self._read_headers(conn)
            if raw is None:
                return

            req = self._parse_request(raw, addr)
        except (socket.timeout, TimeoutError):
            return
        except ValueError:
            self._send_error(conn, 400, "Bad Request")
            return

        try:
            resp = self.request_handler.handle(req)

            self._send(conn, req.method, resp)

        except (socket.timeout, TimeoutError, BrokenPipeError, ConnectionResetError):
            # client went away
            return
        except Exception:
            log.exception("Unhandled exception while serving %s", addr)
            self._send_error(conn, 500, "Internal Server Error")
            return

    def _send_error(self, conn: socket.socket, status: int, reason: str) -> None:
        try:
            self._send(conn, "GET", self._simple_response(status, reason))
        except OSError:
            pass

    def _read_headers(self, conn: socket.socket) -> bytes | None:
        buf = bytearray()
        while True:
            if b"\r\n\r\n" in buf:
                return bytes(buf)
            if len(buf) > self.config.max_header_bytes:
                raise ValueError("request head too large")
            chunk = conn.recv(self.config.chunk_size)
            if chunk == b"":
                return None
            buf.extend(chunk)

    def _parse_request(self, raw: bytes, addr: Tuple[str, int]) -> Request:
        head, _, _ = raw.partition(b"\r\n\r\n")
        lines = head.split(b"\r\n")
        if not lines:
            raise ValueError("empty request")

        request_line = lines[0].decode("iso-8859-1")
        parts = request_line.split()
        if len(parts) != 3:
            raise ValueError("bad request line")

        method, target, version = parts
        if not version.startswith("HTTP/"):
            raise ValueError("bad http version")

        headers = {}
        for bline in lines[1:]:
            if not bline:
                continue
            line = bline.decode("iso-8859-1", errors="ignore")
            if ":" not in line:
                continue
            k, v = line.split(":", 1)
            headers[k.strip().lower()] = v.strip()

        path = target.split("?", 1)[0]
        path = unquote(path)

        return Request(
            method=method,
            target=target,
            path=path,
            version=version,
            headers=headers,
            client_addr=(addr[0], addr[1]),
        )

    def _send(self, conn: socket.socket, method: str, resp: ResponseSpec) -> None:
        """Write the response; the body file, if any, is closed afterwards."""
        try:
            method = method.upper()
            head_only = (method == "HEAD")
            body_size = resp.body_size if resp.body_file is not None else len(resp.body)

            headers = dict(resp.headers)
            headers.setdefault("Date", self._http_date())
            headers.setdefault("Server", self.server_name)
            headers.setdefault("Connection", "close")
            headers.setdefault("Content-Length", str(body_size))

            status_line = f"HTTP/1.1 {resp.status} {resp.reason}\r\n"
            header_block = status_line + "".join(f"{k}: {v}\r\n" for k, v in headers.items()) + "\r\n"
            conn.sendall(header_block.encode("iso-8859-1"))

            if head_only:
                return

            if resp.body_file is not None:
                self._send_file(conn, resp)
            elif resp.body:
                conn.sendall(resp.body)
        finally:
            if resp.body_file is not None:
                resp.body_file.close()

    def _send_file(self, conn: socket.socket, resp: ResponseSpec) -> None:
        f = resp.body_file
        f.seek(resp.body_offset)
        remaining = resp.body_size
        while remaining > 0:
            data = f.read(min(self.config.chunk_size, remaining))
            if not data:
                break
            conn.sendall(data)
            remaining -= len(data)

    def _simple_response(self, status: int, reason: str) -> ResponseSpec:
        return ResponseSpec(
            status=status,
            reason=reason,
            headers={"Content-Type": "text/plain; charset=utf-8"},
            body=f"{status} {reason}\n".encode("utf-8"),
        )

    @staticmethod
    def _http_date() -> str:
        dt = datetime.now(timezone.utc)
        return dt.strftime("%a, %d %b %Y %H:%M:%S GMT")

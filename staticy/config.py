import os
from dataclasses import dataclass
from typing import Tuple

DEFAULT_DOCROOT = "./static"
DEFAULT_LISTEN = "0.0.0.0:8000"


@dataclass(frozen=True)
class Config:
    root: str
    host: str = "0.0.0.0"
    port: int = 8000
    no_indexing: bool = False
    workers: int = 4
    queue_size: int = 1000
    backlog: int = 128
    recv_timeout: float = 2.0
    accept_timeout: float = 1.0
    max_header_bytes: int = 65536
    chunk_size: int = 64 * 1024

    @property
    def listen(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


def parse_listen(listen: str) -> Tuple[str, int]:
    """Split a ``host:port`` string. An empty host means all interfaces."""
    host, sep, port = listen.rpartition(":")
    if not sep:
        raise ValueError(f"missing port in listen address {listen!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    if not port.isdigit():
        raise ValueError(f"invalid port in listen address {listen!r}")
    number = int(port)
    if number > 65535:
        raise ValueError(f"port out of range in listen address {listen!r}")
    return host or "0.0.0.0", number


def build_config(
    docroot: str = DEFAULT_DOCROOT,
    listen: str = DEFAULT_LISTEN,
    no_indexing: bool = False,
    **kwargs,
) -> Config:
    host, port = parse_listen(listen)
    return Config(
        host=host,
        port=port,
        root=os.path.abspath(docroot),
        no_indexing=no_indexing,
        **kwargs,
    )

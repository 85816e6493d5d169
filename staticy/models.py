from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .filesystem import File


@dataclass(frozen=True)
class Request:
    method: str
    target: str
    path: str
    version: str
    headers: Dict[str, str] = field(default_factory=dict)
    client_addr: Tuple[str, int] = ("", 0)

    @property
    def host(self) -> str:
        return self.headers.get("host", "")

    @property
    def query(self) -> str:
        return self.target.partition("?")[2]

    @property
    def remote_addr(self) -> str:
        host, port = self.client_addr[0], self.client_addr[1]
        if ":" in host:
            return f"[{host}]:{port}"
        return f"{host}:{port}"


@dataclass(frozen=True)
class ResponseSpec:
    status: int
    reason: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    body_file: Optional[File] = None
    body_offset: int = 0
    body_size: int = 0

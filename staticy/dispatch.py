import logging
from typing import Protocol

from .models import Request, ResponseSpec

log = logging.getLogger(__name__)


class RequestHandler(Protocol):
    def handle(self, req: Request) -> ResponseSpec: ...


class LoggingDispatcher:
    """Logs one line per request, then hands it to the wrapped handler."""

    def __init__(self, handler: RequestHandler, logger: logging.Logger = log) -> None:
        self.handler = handler
        self.logger = logger

    def handle(self, req: Request) -> ResponseSpec:
        # remote host proto method target
        self.logger.info(
            "%s %s %s %s %s",
            req.remote_addr,
            req.host,
            req.version,
            req.method,
            req.target,
        )
        return self.handler.handle(req)


def wrap(handler: RequestHandler) -> LoggingDispatcher:
    return LoggingDispatcher(handler)

import argparse
import logging
import sys

from staticy.config import DEFAULT_DOCROOT, DEFAULT_LISTEN, build_config
from staticy.server import ThreadedHTTPServer as Server

log = logging.getLogger("staticy")


def make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="A static file server")
    parser.add_argument("--docroot", "-r", type=str, default=DEFAULT_DOCROOT, help="document root")
    parser.add_argument("--listen", "-l", type=str, default=DEFAULT_LISTEN, help="listen to host:port")
    parser.add_argument(
        "--no-indexing",
        "--indexing",
        dest="no_indexing",
        action="store_true",
        help="disable directory indexing (default false)",
    )
    parser.add_argument("--workers", "-w", type=int, default=4, help="number of worker threads")
    parser.add_argument("--debug", "-D", action="store_true", help="enable debug logging")
    return parser


def main(argv=None) -> int:
    parser = make_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if args.debug else logging.INFO,
        format="staticy %(asctime)s %(message)s",
    )

    try:
        config = build_config(
            docroot=args.docroot,
            listen=args.listen,
            no_indexing=args.no_indexing,
            workers=args.workers,
        )
    except ValueError as e:
        parser.error(str(e))

    server = Server(config)
    try:
        server.bind()
    except OSError as e:
        log.critical("Error Starting the HTTP Server : %s", e)
        return 1

    log.info("http static server listen on http://%s for %s", config.listen, config.root)
    log.info("directory indexing: %s", str(not config.no_indexing).lower())

    try:
        server.run()
    except KeyboardInterrupt:
        server.stop()
        log.info("server stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())

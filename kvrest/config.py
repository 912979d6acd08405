"""
Command line configuration for the server.
"""

import argparse
from dataclasses import dataclass, field

DEFAULT_SERVE_ADDRESS = "127.0.0.1:7000"


@dataclass(frozen=True)
class ListenAddress:
    """A TCP host/port pair, or a unix domain socket path."""

    host: str | None = None
    port: int | None = None
    unix_path: str | None = None

    @property
    def is_unix(self) -> bool:
        return self.unix_path is not None

    def __str__(self) -> str:
        if self.is_unix:
            return self.unix_path
        return f"{self.host}:{self.port}"


def parse_address(address: str) -> ListenAddress:
    """
    Parse a serve address.

    Anything containing a path separator is a unix socket path, anything
    else must be ``host:port``.

    Raises:
        ValueError: If a TCP address has no valid port.
    """
    if not address:
        raise ValueError("Serve address cannot be empty")

    if "/" in address:
        return ListenAddress(unix_path=address)

    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"Invalid serve address {address!r}, expected host:port or a socket path")

    port_num = int(port)
    if port_num > 65535:
        raise ValueError(f"Port out of range in {address!r}")

    return ListenAddress(host=host or "0.0.0.0", port=port_num)


@dataclass
class ServerConfig:
    """
    Attributes:
        db_path: Directory of the database to serve.
        addresses: Where to listen.
        prefix: Path prefix for every route.
        fsync_interval_ms: Milliseconds between WAL fsyncs, 0 = every commit.
    """

    db_path: str
    addresses: list[ListenAddress] = field(
        default_factory=lambda: [parse_address(DEFAULT_SERVE_ADDRESS)]
    )
    prefix: str = ""
    fsync_interval_ms: int = 0


def _address(value: str) -> ListenAddress:
    try:
        return parse_address(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kvrest",
        description="Serve a sorted key-value database over HTTP.",
    )
    parser.add_argument("db_path", help="path to the database directory")
    parser.add_argument(
        "-s",
        "--serveaddr",
        dest="addresses",
        action="append",
        type=_address,
        help=f"host:port or unix socket path to listen on, repeatable (default {DEFAULT_SERVE_ADDRESS})",
    )
    parser.add_argument("--prefix", default="", help="path prefix for all endpoints")
    parser.add_argument(
        "--fsync-interval-ms",
        type=int,
        default=0,
        help="milliseconds between WAL fsyncs, 0 syncs every commit (max 10000)",
    )
    return parser


def parse_args(argv: list[str] | None = None) -> ServerConfig:
    """Build a ServerConfig from command line arguments."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not 0 <= args.fsync_interval_ms <= 10000:
        parser.error("--fsync-interval-ms must be between 0 and 10000")

    prefix = args.prefix.rstrip("/")
    if prefix and not prefix.startswith("/"):
        prefix = "/" + prefix

    config = ServerConfig(
        db_path=args.db_path,
        prefix=prefix,
        fsync_interval_ms=args.fsync_interval_ms,
    )
    if args.addresses:
        config.addresses = args.addresses
    return config

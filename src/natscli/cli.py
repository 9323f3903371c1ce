import argparse
import logging
import signal
import sys
from pathlib import Path
from types import FrameType
from typing import Any, Dict, Optional, Sequence

from .settings import ClientSettings
from .core import Client


logger = logging.getLogger(__name__)


def setup_logging(level=logging.WARNING):
    """Route log records for the REPL.

    Records below ERROR share stdout with the prompt, so the default level
    keeps them quiet. Errors always go to stderr.
    """
    formatter = logging.Formatter("[%(asctime)s] %(levelname)s %(name)s: %(message)s")

    info_handler = logging.StreamHandler(sys.stdout)
    info_handler.setLevel(level)
    info_handler.addFilter(lambda record: record.levelno < logging.ERROR)
    info_handler.setFormatter(formatter)

    error_handler = logging.StreamHandler(sys.stderr)
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(info_handler)
    root.addHandler(error_handler)


def build_parser() -> argparse.ArgumentParser:
    # Go-style single dash flags; -h/-help print usage and exit
    parser = argparse.ArgumentParser(
        prog="nats-cli",
        description="Interactive NATS client",
        add_help=False,
        allow_abbrev=False,
    )
    parser.add_argument("-h", "-help", "--help", action="help", help="Print flag usage")
    parser.add_argument("-host", "--host", default=None,
                        help="address of server to connect to (default localhost:4222)")
    parser.add_argument("-tls", "--tls", action="store_true", default=None, help="Use TLS")
    parser.add_argument("-test", "--test", action="store_true", default=None,
                        help="Just test connection, prints pass or fail then returns")
    parser.add_argument("-cert", "--cert", default=None,
                        help="Path to the client certificate to use for TLS connection")
    parser.add_argument("-key", "--key", default=None,
                        help="Path to the client key to use for TLS connection")
    parser.add_argument("-ca", "--ca", default=None,
                        help="Path to the Certificate Authority to use for TLS connection")
    parser.add_argument("-config", "--config", type=Path, default=None,
                        help="Client settings YAML file")
    parser.add_argument("-request-timeout", "--request-timeout", dest="request_timeout",
                        type=float, default=None, help="Seconds to wait for a request reply")
    parser.add_argument("-connect-timeout", "--connect-timeout", dest="connect_timeout",
                        type=float, default=None, help="Seconds to wait for the initial dial")
    parser.add_argument("-log-level", "--log-level", dest="log_level", default=None,
                        help="Logging level (default WARNING)")
    return parser


def load_settings(args: argparse.Namespace) -> ClientSettings:
    """Defaults < YAML < env vars < command line flags."""
    config_path: Optional[Path] = args.config
    if config_path is None:
        settings = ClientSettings()
    elif not config_path.exists():
        raise SystemExit(f"[config] Settings file not found: {config_path}")
    else:
        settings = ClientSettings.from_yaml(config_path)

    overrides: Dict[str, Any] = {
        "host": args.host,
        "tls": args.tls,
        "test": args.test,
        "cert": args.cert,
        "key": args.key,
        "ca": args.ca,
        "request_timeout": args.request_timeout,
        "connect_timeout": args.connect_timeout,
        "log_level": args.log_level,
    }
    return settings.merged(overrides)


def _raise_system_exit(signum: int, _frame: Optional[FrameType]) -> None:
    # unwinds through the client's context manager so the connection closes
    raise SystemExit(128 + signum)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = load_settings(args)
    setup_logging(getattr(logging, settings.log_level.upper(), logging.WARNING))

    previous_sigterm = signal.signal(signal.SIGTERM, _raise_system_exit)

    client = Client(settings=settings)
    try:
        if settings.test:
            return client.run_connection_test()
        return client.run()
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        return 0
    except Exception as e:
        logger.error(f"Client failed: {e}")
        return 1
    finally:
        client.connection.close()
        signal.signal(signal.SIGTERM, previous_sigterm)


if __name__ == "__main__":
    sys.exit(main())

from __future__ import annotations

import asyncio
import logging
import ssl
from typing import Any, Awaitable, Callable, Optional, Protocol, runtime_checkable

import nats
from nats.aio.msg import Msg
from nats.errors import NoServersError

from natscli.settings import ConnectionOptions


MessageCallback = Callable[[Msg], Awaitable[None]]


@runtime_checkable
class BrokerClient(Protocol):
    """Minimal async client interface the ConnectionManager depends on."""
    async def publish(self, subject: str, payload: bytes = b"") -> None: ...
    async def subscribe(self, subject: str, cb: Optional[MessageCallback] = None) -> Any: ...
    async def request(self, subject: str, payload: bytes = b"", timeout: float = 0.5) -> Msg: ...
    async def close(self) -> None: ...
    is_connected: bool


class BrokerClientFactory(Protocol):
    """Factory that dials the broker and returns a connected
    BrokerClient."""
    async def create(self, options: ConnectionOptions, logger: logging.Logger) -> BrokerClient: ...


def build_tls_context(options: ConnectionOptions) -> ssl.SSLContext:
    """Build the TLS context used to dial the broker.

    The CA file, when given, becomes the only trust root. The client
    certificate is loaded together with key_path; an empty key_path is
    passed on as None and the ssl module then looks for the key inside
    the certificate file.

    Raises:
        OSError / ssl.SSLError: when the TLS material is missing or invalid
    """
    if options.ca_path:
        ctx = ssl.create_default_context(ssl.Purpose.SERVER_AUTH, cafile=options.ca_path)
    else:
        ctx = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)

    if options.cert_path:
        ctx.load_cert_chain(certfile=options.cert_path, keyfile=options.key_path or None)
    return ctx


class NatsClientFactory:
    """Default factory using nats-py.

    nats-py retries a refused dial inside its server pool, so the pool is
    capped at one retry with no backoff and the whole dial is bounded by
    connect_timeout. The established connection does not reconnect.
    """
    async def create(self, options: ConnectionOptions, logger: logging.Logger) -> BrokerClient:
        dial_errors: list[Exception] = []
        state = {"established": False}

        async def error_cb(exc: Exception) -> None:
            if not state["established"]:
                dial_errors.append(exc)
                logger.debug("Dial error: %s", exc)
                return
            logger.error("Broker error: %s", exc)

        async def disconnected_cb() -> None:
            logger.info("Disconnected from %s", options.server_url)

        async def closed_cb() -> None:
            logger.debug("Connection to %s closed", options.server_url)

        kwargs: dict[str, Any] = {
            "servers": [options.server_url],
            "connect_timeout": options.connect_timeout,
            "allow_reconnect": False,
            # nats-py only drops a failing server from its pool when this is > 0
            "max_reconnect_attempts": 1,
            "reconnect_time_wait": 0,
            "error_cb": error_cb,
            "disconnected_cb": disconnected_cb,
            "closed_cb": closed_cb,
        }
        if options.use_tls:
            kwargs["tls"] = build_tls_context(options)

        logger.debug("Dialing %s (tls=%s)", options.server_url, options.use_tls)
        try:
            nc = await asyncio.wait_for(nats.connect(**kwargs), timeout=options.connect_timeout)
        except NoServersError as e:
            # surface the dial error rather than the generic pool exhaustion
            if dial_errors:
                raise dial_errors[-1] from e
            raise
        except asyncio.TimeoutError as e:
            if dial_errors:
                raise dial_errors[-1] from e
            raise ConnectionError(
                f"timed out connecting to {options.server_url} after {options.connect_timeout}s"
            ) from e
        state["established"] = True
        logger.info("Connected to %s", options.server_url)
        return nc

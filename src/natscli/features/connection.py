"""Connection manager owning the single broker connection.

nats-py is asyncio based while the REPL is a plain blocking loop, so the
manager runs a private event loop in a background thread and submits
every broker call to it. Subscription callbacks are invoked on that loop
thread, concurrently with the REPL.

The broker client is only ever touched from the loop thread.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Callable, Coroutine, Literal, Optional, TypeVar

from nats.errors import NoRespondersError

from natscli.settings import ConnectionOptions
from natscli.features.broker_client import (
    BrokerClient,
    BrokerClientFactory,
    NatsClientFactory,
)


T = TypeVar("T")


class BrokerError(Exception):
    """Base class for failures reported by the broker layer."""
    pass


class ConnectError(BrokerError):
    """Dial or TLS failure. Fatal at startup."""
    pass


class PublishError(BrokerError):
    pass


class SubscribeError(BrokerError):
    pass


class RequestError(BrokerError):
    """Broker-reported request failure or reply timeout."""
    pass


@dataclass(frozen=True)
class InboundMessage:
    subject: str
    payload: bytes


MessageHandler = Callable[[InboundMessage], None]


class ConnectionManager:
    """Owns the one broker connection and the loop thread serving it."""

    def __init__(
            self,
            options: ConnectionOptions,
            client_factory: Optional[BrokerClientFactory] = None,
            logger: Optional[logging.Logger] = None
    ):
        self.options = options
        self.log = logger or logging.getLogger(__name__)
        self._client_factory: BrokerClientFactory = (
            client_factory if client_factory is not None else NatsClientFactory()
        )

        self._client: Optional[BrokerClient] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._close_lock = threading.Lock()
        self._closed = False

    @property
    def server_url(self) -> str:
        return self.options.server_url

    # lifecycle
    def connect(self) -> None:
        """Dial the broker once.

        Raises:
            ConnectError: dial timeout, refused connection or bad TLS material
        """
        if self._client is not None:
            raise RuntimeError("Connection manager is already connected")
        if self._closed:
            raise RuntimeError("Connection manager is closed")

        self._start_loop()
        try:
            self._client = self._run(self._client_factory.create(self.options, self.log))
        except Exception as e:
            self.log.debug("Failed to connect to %s: %s", self.server_url, e)
            self._stop_loop()
            raise ConnectError(_describe(e)) from e

    def is_connected(self) -> bool:
        return self._client is not None and bool(self._client.is_connected)

    def close(self) -> None:
        """Close the connection and stop the loop thread.

        Safe to call any number of times; only the first call does work.
        """
        with self._close_lock:
            if self._closed:
                self.log.debug("Connection already closed, skipping close")
                return
            self._closed = True

        client, self._client = self._client, None
        try:
            if client is not None and self._loop is not None:
                try:
                    self._run(client.close())
                    self.log.debug("Connection to %s closed", self.server_url)
                except Exception as e:
                    self.log.error("Error closing connection to %s: %s", self.server_url, e)
        finally:
            self._stop_loop()

    # broker operations
    def publish(self, subject: str, payload: bytes) -> None:
        client = self._require_client(PublishError)
        try:
            self._run(client.publish(subject, payload))
        except Exception as e:
            raise PublishError(_describe(e)) from e
        self.log.debug("Published %d bytes to %s", len(payload), subject)

    def subscribe(self, subject: str, handler: MessageHandler) -> None:
        """Register handler for every message arriving on subject.

        The handler runs on the loop thread and must only format and
        print.
        """
        client = self._require_client(SubscribeError)

        async def _deliver(msg: Any) -> None:
            try:
                handler(InboundMessage(subject=msg.subject, payload=msg.data))
            except Exception:
                self.log.exception("Subscription handler failed for %s", msg.subject)

        try:
            self._run(client.subscribe(subject, cb=_deliver))
        except Exception as e:
            raise SubscribeError(_describe(e)) from e
        self.log.info("Subscribed to %s", subject)

    def request(self, subject: str, payload: bytes, timeout: Optional[float] = None) -> bytes:
        """Send payload and block until a single reply or the timeout."""
        client = self._require_client(RequestError)
        timeout = self.options.request_timeout if timeout is None else timeout
        try:
            msg = self._run(client.request(subject, payload, timeout=timeout))
        except NoRespondersError as e:
            raise RequestError(f"request on {subject} timed out: no responders available") from e
        except asyncio.TimeoutError as e:
            raise RequestError(f"request on {subject} timed out after {timeout}s") from e
        except Exception as e:
            raise RequestError(_describe(e)) from e
        return msg.data

    # loop thread
    def _start_loop(self) -> None:
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever, name="BrokerLoop", daemon=True
        )
        self._thread.start()

    def _stop_loop(self) -> None:
        loop, thread = self._loop, self._thread
        self._loop, self._thread = None, None
        if loop is None:
            return
        loop.call_soon_threadsafe(loop.stop)
        if thread is not None and thread.is_alive():
            thread.join(timeout=1.0)
            if thread.is_alive():
                self.log.warning("Broker loop thread failed to stop within timeout")
                return
        loop.close()

    def _run(self, coro: Coroutine[Any, Any, T]) -> T:
        """Run coro on the loop thread and wait for its result."""
        if self._loop is None:
            coro.close()
            raise RuntimeError("Broker loop is not running")
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result()

    def _require_client(self, error: type[BrokerError]) -> BrokerClient:
        if self._client is None:
            raise error("not connected")
        return self._client

    # context-manager sugar
    def __enter__(self) -> "ConnectionManager":
        self.connect()
        return self

    def __exit__(
            self,
            _exc_type: type[BaseException] | None,
            _exc_val: BaseException | None,
            _exc_tb: TracebackType | None
    ) -> Literal[False]:
        self.close()
        return False  # propagate exceptions


def _describe(exc: BaseException) -> str:
    text = str(exc)
    return text if text else type(exc).__name__

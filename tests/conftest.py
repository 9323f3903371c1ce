import asyncio
import io
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

import pytest
from nats.errors import (
    ConnectionClosedError,
    NoRespondersError,
    NoServersError,
    TimeoutError as NatsTimeoutError,
)

from natscli.settings import ClientSettings


@dataclass
class FakeMsg:
    subject: str
    data: bytes


@dataclass
class FakeBroker:
    """In-memory broker state shared by every FakeClient of a test."""
    subscriptions: Dict[str, List[Callable[..., Any]]] = field(default_factory=dict)
    responders: Dict[str, Callable[[bytes], bytes]] = field(default_factory=dict)
    published: List[FakeMsg] = field(default_factory=list)
    close_calls: int = 0
    reachable: bool = True
    no_responders: bool = False  # answer like a server with nobody subscribed


class FakeClient:
    """Async stand-in for nats.aio.client.Client."""

    def __init__(self, broker: FakeBroker):
        self.broker = broker
        self.is_connected = True

    async def publish(self, subject: str, payload: bytes = b"") -> None:
        if not self.is_connected:
            raise ConnectionClosedError
        msg = FakeMsg(subject, payload)
        self.broker.published.append(msg)
        for cb in self.broker.subscriptions.get(subject, []):
            asyncio.get_running_loop().create_task(cb(msg))

    async def subscribe(self, subject: str, cb=None) -> Any:
        if not self.is_connected:
            raise ConnectionClosedError
        self.broker.subscriptions.setdefault(subject, []).append(cb)
        return object()

    async def request(self, subject: str, payload: bytes = b"", timeout: float = 0.5) -> FakeMsg:
        if not self.is_connected:
            raise ConnectionClosedError
        responder = self.broker.responders.get(subject)
        if responder is None:
            if self.broker.no_responders:
                raise NoRespondersError
            await asyncio.sleep(timeout)
            raise NatsTimeoutError
        return FakeMsg(subject, responder(payload))

    async def close(self) -> None:
        self.broker.close_calls += 1
        self.is_connected = False


class FakeClientFactory:
    def __init__(self, broker: FakeBroker):
        self.broker = broker
        self.created: List[FakeClient] = []

    async def create(self, options, logger) -> FakeClient:
        if not self.broker.reachable:
            raise NoServersError
        client = FakeClient(self.broker)
        self.created.append(client)
        return client


@pytest.fixture
def broker():
    return FakeBroker()


@pytest.fixture
def client_factory(broker):
    return FakeClientFactory(broker)


@pytest.fixture
def settings():
    return ClientSettings(host="127.0.0.1:4222", request_timeout=0.05, log_level="ERROR")


@pytest.fixture
def out():
    return io.StringIO()


def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    """Poll predicate until true or timeout."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def wait():
    return wait_for


def make_stdin(*lines: str) -> io.StringIO:
    text = "".join(line + "\n" for line in lines)
    return io.StringIO(text)


@pytest.fixture
def stdin_factory() -> Callable[..., io.StringIO]:
    return make_stdin

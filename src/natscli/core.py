from __future__ import annotations
import logging
import sys
from enum import Enum
from types import TracebackType
from typing import Optional, Literal, TextIO

from natscli.settings import ClientSettings, ConnectionOptions
from natscli.features.broker_client import BrokerClientFactory
from natscli.features.commands import parse_command
from natscli.features.connection import ConnectionManager, ConnectError
from natscli.features.dispatcher import BANNER, Dispatcher
from natscli.features.handler import SubscriptionMessageHandler


PROMPT = "> "


class ReplState(Enum):
    CONNECTING = "connecting"
    READY = "ready"
    READING = "reading"
    DISPATCHING = "dispatching"
    TERMINATED = "terminated"


class Client:
    """Interactive client: one connection, one prompt at a time."""

    def __init__(
            self,
            settings: Optional[ClientSettings] = None,
            client_factory: Optional[BrokerClientFactory] = None,
            stdin: Optional[TextIO] = None,
            stdout: Optional[TextIO] = None,
            logger: Optional[logging.Logger] = None
    ):
        self.settings: ClientSettings = settings if settings is not None else ClientSettings()
        self.options: ConnectionOptions = self.settings.connection_options()
        self.stdin = stdin if stdin is not None else sys.stdin
        self.stdout = stdout if stdout is not None else sys.stdout
        self.log = logger or logging.getLogger(__name__)

        self.state = ReplState.CONNECTING
        self.connection = ConnectionManager(self.options, client_factory=client_factory, logger=self.log)
        self.dispatcher = Dispatcher(
            self.connection,
            out=self.stdout,
            handler=SubscriptionMessageHandler(self.stdout, logger=self.log),
            request_timeout=self.options.request_timeout,
            logger=self.log,
        )

    # public API
    def run(self) -> int:
        """Connect, then serve the prompt until quit or EOF.

        Returns the process exit status.
        """
        self._write(f"Connecting to {self.options.server_url}\n")
        try:
            self.connection.connect()
        except ConnectError as e:
            self._write(f"Connection Failed: {e}\n")
            self._terminate()
            return 1

        with self:
            self._write(BANNER)
            self._loop()
        return 0

    def run_connection_test(self) -> int:
        """Connect, report liveness, close. No command is dispatched."""
        try:
            self.connection.connect()
        except ConnectError as e:
            self._write(f"Connection Failed: {e}\n")
            self._terminate()
            return 1

        with self:
            if self.connection.is_connected():
                self._write("Connection Successful\n")
                return 0
            self._write("Connection Failed: not connected\n")
            return 1

    # state machine
    def _loop(self) -> None:
        self.state = ReplState.READY
        while self.state is ReplState.READY:
            self._write(PROMPT)
            self.state = ReplState.READING
            try:
                line = self.stdin.readline()
            except KeyboardInterrupt:
                self._write("\n")
                self.log.info("Interrupted, shutting down")
                return
            if not line:  # EOF
                self._write("\n")
                self.log.debug("End of input")
                return

            self.state = ReplState.DISPATCHING
            keep_going = self.dispatcher.dispatch(parse_command(line))
            if not keep_going:
                self.log.debug("Quit requested")
                return
            self.state = ReplState.READY

    def _terminate(self) -> None:
        self.connection.close()
        self.state = ReplState.TERMINATED

    def _write(self, text: str) -> None:
        self.dispatcher.console.write(text)

    # context-manager sugar
    def __enter__(self) -> "Client":
        return self

    def __exit__(
            self,
            _exc_type: type[BaseException] | None,
            _exc_val: BaseException | None,
            _exc_tb: TracebackType | None
    ) -> Literal[False]:
        self._terminate()
        return False  # propagate exceptions

"""Maps parsed commands onto broker operations or local REPL effects.

Every broker-layer error is caught here and turned into a printed line,
so nothing raised by the broker ever ends the REPL.

Commands
--------
PUB <subject> <message>  -> publish, silent on success
SUB <subject>            -> subscribe, prints +OK
REQ <subject> <message>  -> request, prints the reply
H | HELP                 -> banner
Q | QUIT                 -> stop the REPL
<else>                   -> "Unrecognized command"
"""
from __future__ import annotations

import logging
import sys
from typing import Callable, Optional, TextIO

from natscli.features.commands import Command, CommandArityError, CommandKind, check_arity
from natscli.features.connection import (
    ConnectionManager,
    PublishError,
    RequestError,
    SubscribeError,
)
from natscli.features.handler import SubscriptionMessageHandler


BANNER = """
#####################################################################
#                      WELCOME TO NATS-CLIent!                      #
#-------------------------------------------------------------------#
#    PUBLISH   - PUB <subject> <message>                            #
#    SUBSCRIBE - SUB <subject>                                      #
#    REQUEST   - REQ <subject> <message>                            #
#    HELP      - H | HELP (prints this message again)               #
#    QUIT      - Q | QUIT                                           #
#####################################################################

"""


class Dispatcher:

    def __init__(
            self,
            connection: ConnectionManager,
            out: Optional[TextIO] = None,
            handler: Optional[SubscriptionMessageHandler] = None,
            request_timeout: Optional[float] = None,
            logger: Optional[logging.Logger] = None
    ):
        self.connection = connection
        self.out = out if out is not None else sys.stdout
        self.handler = handler if handler is not None else SubscriptionMessageHandler(self.out)
        # one lock for command output and message delivery
        self.console = self.handler.console
        self.request_timeout = request_timeout
        self.log = logger or logging.getLogger(__name__)

        self._handlers: dict[CommandKind, Callable[[Command], bool]] = {
            CommandKind.PUBLISH: self._publish,
            CommandKind.SUBSCRIBE: self._subscribe,
            CommandKind.REQUEST: self._request,
            CommandKind.HELP: self._help,
            CommandKind.QUIT: self._quit,
            CommandKind.UNRECOGNIZED: self._unrecognized,
        }

    def dispatch(self, command: Command) -> bool:
        """Execute command. Returns False when the REPL should stop."""
        self.log.debug("Dispatching %s %s", command.kind.value, command.args)
        try:
            check_arity(command)
        except CommandArityError as e:
            self._print(str(e))
            return True
        return self._handlers[command.kind](command)

    # command handlers
    def _publish(self, command: Command) -> bool:
        try:
            self.connection.publish(command.subject, command.payload.encode())
        except PublishError as e:
            self.log.debug("Publish to %s failed: %s", command.subject, e)
            self._print(f"Error Publishing: {e}")
        return True

    def _subscribe(self, command: Command) -> bool:
        try:
            self.connection.subscribe(command.subject, self.handler)
        except SubscribeError as e:
            self.log.debug("Subscribe to %s failed: %s", command.subject, e)
            self._print(f"Error Subscribing: {e}")
            return True
        self._print("+OK")
        return True

    def _request(self, command: Command) -> bool:
        try:
            reply = self.connection.request(
                command.subject, command.payload.encode(), timeout=self.request_timeout
            )
        except RequestError as e:
            self.log.debug("Request on %s failed: %s", command.subject, e)
            self._print(f"Error Requesting: {e}")
            return True
        self._print(f"Response: {reply.decode('utf-8', errors='replace')}")
        return True

    def _help(self, _command: Command) -> bool:
        self.console.write(BANNER)
        return True

    def _quit(self, _command: Command) -> bool:
        return False

    def _unrecognized(self, _command: Command) -> bool:
        self._print("Unrecognized command")
        return True

    def _print(self, line: str) -> None:
        self.console.write(line + "\n")

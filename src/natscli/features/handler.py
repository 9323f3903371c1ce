import logging
import sys
import threading
from typing import Optional, TextIO, Union

from natscli.features.connection import InboundMessage


class Console:
    """Terminal output shared by the REPL thread and the broker loop thread.

    Each write is flushed while holding the lock, so a delivered message
    never lands in the middle of a prompt or a command result.
    """

    def __init__(self, out: Optional[TextIO] = None):
        self.out = out if out is not None else sys.stdout
        self._lock = threading.Lock()

    def write(self, text: str) -> None:
        with self._lock:
            self.out.write(text)
            self.out.flush()


class SubscriptionMessageHandler:
    """Prints every inbound message, then redraws the prompt marker.

    Called from the broker loop thread, so it only formats and writes.
    """

    def __init__(
            self,
            out: Union[TextIO, Console, None] = None,
            logger: Optional[logging.Logger] = None
    ):
        self.console = out if isinstance(out, Console) else Console(out)
        self.log = logger or logging.getLogger(__name__)

    @property
    def out(self) -> TextIO:
        return self.console.out

    @staticmethod
    def format(message: InboundMessage) -> str:
        payload = message.payload.decode("utf-8", errors="replace")
        return f"\n+MSG {message.subject}: {payload}\n>"

    def __call__(self, message: InboundMessage) -> None:
        self.console.write(self.format(message))
        self.log.debug("Delivered %d bytes from %s", len(message.payload), message.subject)

"""Parsing of REPL input lines into commands."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class CommandKind(Enum):
    PUBLISH = "publish"
    SUBSCRIBE = "subscribe"
    REQUEST = "request"
    HELP = "help"
    QUIT = "quit"
    UNRECOGNIZED = "unrecognized"


VERBS: dict[str, CommandKind] = {
    "P": CommandKind.PUBLISH,
    "PUB": CommandKind.PUBLISH,
    "PUBLISH": CommandKind.PUBLISH,
    "S": CommandKind.SUBSCRIBE,
    "SUB": CommandKind.SUBSCRIBE,
    "SUBSCRIBE": CommandKind.SUBSCRIBE,
    "R": CommandKind.REQUEST,
    "REQ": CommandKind.REQUEST,
    "REQUEST": CommandKind.REQUEST,
    "H": CommandKind.HELP,
    "HELP": CommandKind.HELP,
    "Q": CommandKind.QUIT,
    "QUIT": CommandKind.QUIT,
}

# minimum token count, verb included
MIN_TOKENS: dict[CommandKind, int] = {
    CommandKind.PUBLISH: 3,
    CommandKind.SUBSCRIBE: 2,
    CommandKind.REQUEST: 3,
}

USAGE: dict[CommandKind, str] = {
    CommandKind.PUBLISH: "Pub usage: PUB <subject> <message>",
    CommandKind.SUBSCRIBE: "Sub usage: SUB <subject>",
    CommandKind.REQUEST: "Req usage: REQ <subject> <message>",
}


class CommandArityError(ValueError):
    """Raised when a command has fewer tokens than it needs.

    The message is the usage line for that command.
    """
    def __init__(self, kind: CommandKind):
        super().__init__(USAGE[kind])
        self.kind = kind


@dataclass(frozen=True)
class Command:
    kind: CommandKind
    args: tuple[str, ...] = ()
    raw: str = ""

    @property
    def token_count(self) -> int:
        return len(self.args) + 1

    @property
    def subject(self) -> str:
        return self.args[0] if self.args else ""

    @property
    def payload(self) -> str:
        """Everything after the subject, re-joined with single spaces."""
        return " ".join(self.args[1:])


def parse_command(line: str) -> Command:
    """Turn one input line into a Command. Never raises."""
    raw = line.strip()
    tokens = raw.split()
    if not tokens:
        return Command(CommandKind.UNRECOGNIZED, raw=raw)

    kind = VERBS.get(tokens[0].upper(), CommandKind.UNRECOGNIZED)
    return Command(kind, tuple(tokens[1:]), raw=raw)


def check_arity(command: Command) -> None:
    """Raise CommandArityError if command lacks required arguments."""
    needed = MIN_TOKENS.get(command.kind)
    if needed is not None and command.token_count < needed:
        raise CommandArityError(command.kind)

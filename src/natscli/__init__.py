from .core import Client, ReplState
from .settings import ClientSettings, ConnectionOptions
from .features.connection import (
    ConnectionManager,
    InboundMessage,
    BrokerError,
    ConnectError,
    PublishError,
    SubscribeError,
    RequestError,
)
from .features.broker_client import BrokerClient, BrokerClientFactory, NatsClientFactory
from .features.commands import Command, CommandKind, CommandArityError, parse_command
from .features.dispatcher import Dispatcher
from .features.handler import Console, SubscriptionMessageHandler

__all__ = [
    "Client",
    "ReplState",
    "ClientSettings",
    "ConnectionOptions",
    "ConnectionManager",
    "InboundMessage",
    "BrokerError",
    "ConnectError",
    "PublishError",
    "SubscribeError",
    "RequestError",
    "BrokerClient",
    "BrokerClientFactory",
    "NatsClientFactory",
    "Command",
    "CommandKind",
    "CommandArityError",
    "parse_command",
    "Dispatcher",
    "SubscriptionMessageHandler",
    "Console",
]

"""
Ingest layer: broadcast lookup, chat tokens, chat polling, parsing and status monitoring
"""

from .broadcast_resolver import BroadcastResolver, extract_broadcast_id
from .chat_poller import ChatPoller
from .message_parser import MessageParser, parse_messages
from .status_monitor import StatusMonitor
from .token_provider import TokenProvider

__all__ = [
    "BroadcastResolver",
    "extract_broadcast_id",
    "ChatPoller",
    "MessageParser",
    "parse_messages",
    "StatusMonitor",
    "TokenProvider",
]

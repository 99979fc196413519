"""
Schemas: broadcast/chat models, receiver payloads and error taxonomy
"""

from .broadcast import (
    BroadcastInfo,
    ChatCredentials,
    ChatHistoryResponse,
    ParsedComment,
    RawChatMessage,
)
from .receiver import ReceiverCommentPayload, ReceiverService, ResolvedService

__all__ = [
    "BroadcastInfo",
    "ChatCredentials",
    "ChatHistoryResponse",
    "ParsedComment",
    "RawChatMessage",
    "ReceiverCommentPayload",
    "ReceiverService",
    "ResolvedService",
]

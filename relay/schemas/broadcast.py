"""
Broadcast and Chat Schemas

Pydantic models for broadcast metadata, chat-session credentials and chat
history envelopes returned by the broadcast platform.
"""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

STATE_RUNNING = "RUNNING"
STATE_ENDED = "ENDED"
STATE_TIMED_OUT = "TIMED_OUT"

# Lifecycle states after which the broadcast will never produce chat again
TERMINAL_STATES = frozenset({STATE_ENDED, STATE_TIMED_OUT})


class BroadcastInfo(BaseModel):
    """Snapshot of a broadcast's metadata. Re-fetched, never mutated."""

    model_config = ConfigDict(frozen=True)

    broadcast_id: str
    media_key: str
    title: str = ""
    state: str = Field(..., description="RUNNING, ENDED, TIMED_OUT or another raw state")
    username: str = ""
    display_name: str = ""
    started_at: int = Field(0, description="Broadcast start as epoch milliseconds")


class ChatCredentials(BaseModel):
    """Short-lived chat session credentials. Replaced wholesale on refresh."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    endpoint: str = Field(..., description="Region-specific chat server base URL")
    room_id: str
    expires_at: int = Field(..., description="Expiry as epoch milliseconds")


class RawChatMessage(BaseModel):
    """Chat history envelope: kind 1 is a chat message, anything else is system traffic."""

    kind: int
    payload: Optional[str] = Field(None, description="JSON text; system traffic may omit it")
    signature: Optional[str] = ""


class ChatHistoryResponse(BaseModel):
    """
    One history page. Entries stay raw here and are validated one by one,
    so a single malformed entry cannot discard the page or its cursor.
    """

    messages: Optional[List[Any]] = Field(default_factory=list)
    cursor: Optional[str] = ""


class ParsedComment(BaseModel):
    """Normalized chat comment. ``id`` is the only deduplication key."""

    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    username: str
    display_name: str
    comment: str
    profile_image: str = ""
    timestamp: int = Field(..., description="Comment time as epoch milliseconds")
    verified: bool = False
    lang: str = ""

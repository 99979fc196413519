"""
Chat Message Parser

Converts raw chat-history envelopes into ParsedComment records. A chat
envelope (kind 1) carries a JSON payload whose ``body`` field is itself a
JSON string holding the comment text and its millisecond timestamp.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from relay.schemas.broadcast import ParsedComment, RawChatMessage
from relay.utils.logging import get_logger

logger = get_logger(__name__, category="chat")

KIND_CHAT = 1


def _load_object(raw: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, str):
        return None
    try:
        value = json.loads(raw)
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def _parse_one(message: RawChatMessage) -> Optional[ParsedComment]:
    payload = _load_object(message.payload)
    if payload is None:
        logger.warning(f"Failed to parse chat payload JSON (signature: {(message.signature or '')[:16]})")
        return None

    body = _load_object(payload.get("body"))
    if body is None:
        logger.warning(f"Failed to parse chat body JSON (uuid: {payload.get('uuid')})")
        return None

    sender = payload.get("sender")
    if not isinstance(sender, dict):
        sender = {}

    try:
        return ParsedComment(
            id=payload["uuid"],
            user_id=str(sender.get("twitter_id") or sender.get("user_id") or ""),
            username=sender.get("username") or "",
            display_name=sender.get("display_name") or sender.get("username") or "",
            comment=body["body"],
            profile_image=sender.get("profile_image_url") or "",
            timestamp=body.get("timestamp") or 0,
            verified=bool(sender.get("verified", False)),
            lang=payload.get("lang") or "",
        )
    except (KeyError, ValidationError) as e:
        logger.warning(f"Skipping malformed chat message (uuid: {payload.get('uuid')}): {e}")
        return None


def parse_messages(raw: List[RawChatMessage]) -> List[ParsedComment]:
    """
    Parse a batch of envelopes, preserving order.

    Non-chat kinds are skipped silently; a malformed chat entry is logged and
    skipped without affecting the rest of the batch.
    """
    results: List[ParsedComment] = []
    for message in raw:
        if message.kind != KIND_CHAT:
            continue
        comment = _parse_one(message)
        if comment is not None:
            results.append(comment)
    return results


class MessageParser:
    def parse(self, raw: List[RawChatMessage]) -> List[ParsedComment]:
        return parse_messages(raw)

"""
Receiver Schemas

Models for the local comment-display application (the receiver): its
service listing and the comment payload accepted by ``POST /api/comments``.
"""

from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field

from relay.schemas.broadcast import ParsedComment


class ReceiverService(BaseModel):
    """One element of ``GET /api/services``. Unknown fields are ignored."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = ""
    url: str = ""


class ResolvedService(BaseModel):
    model_config = ConfigDict(frozen=True)

    service_id: str
    url: str


class ServiceRef(BaseModel):
    id: str


class CommentBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    user_id: str = Field(..., alias="userId")
    name: str
    comment: str
    profile_image: str = Field("", alias="profileImage")
    badges: List[str] = Field(default_factory=list)
    has_gift: Literal[False] = Field(False, alias="hasGift")
    is_owner: bool = Field(False, alias="isOwner")
    timestamp: int


class ReceiverCommentPayload(BaseModel):
    """Wire body for ``POST /api/comments``."""

    service: ServiceRef
    comment: CommentBody

    @classmethod
    def from_comment(
        cls, comment: ParsedComment, service_id: str, owner_user_id: str
    ) -> "ReceiverCommentPayload":
        # The receiver shows ``name``, so the display name wins over the handle
        return cls(
            service=ServiceRef(id=service_id),
            comment=CommentBody(
                id=comment.id,
                user_id=comment.user_id,
                name=comment.display_name,
                comment=comment.comment,
                profile_image=comment.profile_image,
                is_owner=bool(owner_user_id) and owner_user_id in (comment.user_id, comment.username),
                timestamp=comment.timestamp,
            ),
        )

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)

"""
Error Taxonomy

Closed, per-component error sets. Each variant is a frozen pydantic model
with a literal ``kind`` so callers can match exhaustively on the variant
instead of inspecting message strings.
"""

from __future__ import annotations

from typing import List, Literal, Union

from pydantic import BaseModel, ConfigDict


class _ErrorModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class ApiError(_ErrorModel):
    """Transport or HTTP failure. ``status`` is 0 when no response arrived."""

    kind: Literal["api_error"] = "api_error"
    status: int
    message: str = ""


# ---------------------------------------------------------------------------
# Broadcast resolution
# ---------------------------------------------------------------------------


class InvalidUrl(_ErrorModel):
    kind: Literal["invalid_url"] = "invalid_url"
    url: str


class BroadcastNotFound(_ErrorModel):
    kind: Literal["not_found"] = "not_found"
    broadcast_id: str


class BroadcastAlreadyEnded(_ErrorModel):
    kind: Literal["already_ended"] = "already_ended"
    broadcast_id: str


BroadcastError = Union[InvalidUrl, BroadcastNotFound, BroadcastAlreadyEnded, ApiError]


# ---------------------------------------------------------------------------
# Token acquisition
# ---------------------------------------------------------------------------


class StreamNotFound(_ErrorModel):
    kind: Literal["stream_not_found"] = "stream_not_found"
    media_key: str


class StreamOffline(_ErrorModel):
    kind: Literal["stream_offline"] = "stream_offline"


class ChatAccessDenied(_ErrorModel):
    kind: Literal["chat_access_denied"] = "chat_access_denied"


TokenError = Union[StreamNotFound, StreamOffline, ChatAccessDenied, ApiError]


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


class ConnectionRefused(_ErrorModel):
    kind: Literal["connection_refused"] = "connection_refused"


class InvalidServiceId(_ErrorModel):
    kind: Literal["invalid_service_id"] = "invalid_service_id"
    service_id: str


class ValidationFailed(_ErrorModel):
    kind: Literal["validation_error"] = "validation_error"
    details: str


class Timeout(_ErrorModel):
    kind: Literal["timeout"] = "timeout"


SendError = Union[ConnectionRefused, InvalidServiceId, ValidationFailed, ApiError, Timeout]

# Configuration-class delivery errors; retrying cannot fix them
NON_RETRYABLE_SEND_ERRORS = frozenset({"invalid_service_id", "validation_error"})


# ---------------------------------------------------------------------------
# Configuration (CLI)
# ---------------------------------------------------------------------------


class MissingServiceTarget(_ErrorModel):
    kind: Literal["missing_service_target"] = "missing_service_target"


class ConflictingServiceOptions(_ErrorModel):
    kind: Literal["conflicting_service_options"] = "conflicting_service_options"


class InvalidPort(_ErrorModel):
    kind: Literal["invalid_port"] = "invalid_port"
    port: str


class InvalidViewerPort(_ErrorModel):
    kind: Literal["invalid_viewer_port"] = "invalid_viewer_port"
    port: str


class InvalidArguments(_ErrorModel):
    """Malformed command line (e.g. an option missing its value)."""

    kind: Literal["invalid_arguments"] = "invalid_arguments"
    message: str


ConfigError = Union[
    MissingServiceTarget,
    ConflictingServiceOptions,
    InvalidUrl,
    InvalidPort,
    InvalidViewerPort,
    InvalidArguments,
]


# ---------------------------------------------------------------------------
# Service resolution
# ---------------------------------------------------------------------------


class ServiceNotFound(_ErrorModel):
    kind: Literal["not_found"] = "not_found"
    service_name: str
    available_services: List[str]


class ServiceIdNotFound(_ErrorModel):
    kind: Literal["id_not_found"] = "id_not_found"
    service_id: str


class ServiceUrlNotFound(_ErrorModel):
    kind: Literal["url_not_found"] = "url_not_found"
    service_id: str
    service_name: str


class ServiceMatch(_ErrorModel):
    id: str
    name: str


class AmbiguousService(_ErrorModel):
    kind: Literal["ambiguous"] = "ambiguous"
    service_name: str
    matches: List[ServiceMatch]


ServiceResolveError = Union[
    ServiceNotFound,
    ServiceIdNotFound,
    ServiceUrlNotFound,
    AmbiguousService,
    ConnectionRefused,
    Timeout,
    ApiError,
]

"""
Delivery layer: duplicate suppression, receiver client, buffering and service lookup
"""

from .buffered_client import BufferedReceiverClient
from .duplicate_filter import DuplicateFilter
from .receiver_client import ReceiverClient
from .service_resolver import ServiceByName, ServiceById, ServiceResolver

__all__ = [
    "BufferedReceiverClient",
    "DuplicateFilter",
    "ReceiverClient",
    "ServiceByName",
    "ServiceById",
    "ServiceResolver",
]

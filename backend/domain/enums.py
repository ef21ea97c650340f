"""
Domain enums (minimal set used for clarity in services).
"""

from enum import Enum


class OrderStatus(str, Enum):
    ORDERED = "ordered"
    COURIERED = "couriered"
    DELIVERED = "delivered"

    @classmethod
    def values(cls) -> list[str]:
        return [s.value for s in cls]


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"


class StorageType(str, Enum):
    INTERNAL = "internal"
    S3 = "s3"
    API = "api"


class EffectStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    DUPLICATE = "duplicate"

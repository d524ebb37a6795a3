"""Data models for homebutler."""

from homebutler.models.alerts import AlertThresholds
from homebutler.models.host import AuthMode, HostConfig, normalize_address
from homebutler.models.result import HostResult, decode_payload
from homebutler.models.trust import (
    HostKeyProbe,
    TrustRecord,
    TrustStatus,
    fingerprint,
)

__all__ = [
    "AlertThresholds",
    "AuthMode",
    "HostConfig",
    "HostKeyProbe",
    "HostResult",
    "TrustRecord",
    "TrustStatus",
    "decode_payload",
    "fingerprint",
    "normalize_address",
]

"""Alert threshold models."""

from dataclasses import dataclass


@dataclass(frozen=True)
class AlertThresholds:
    """Usage percentages at which a resource is reported critical."""

    cpu: float = 90.0
    memory: float = 85.0
    disk: float = 90.0

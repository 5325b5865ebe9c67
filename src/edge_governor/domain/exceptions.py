"""Exception taxonomy for the edge governor.

Runtime resource pressure (heat, memory, unreachable devices) is always
modelled as a recoverable exception. Only malformed configuration is fatal,
and it is rejected at construction time.
"""

from __future__ import annotations

from typing import Mapping, Optional


class GovernorError(Exception):
    """Base exception for the edge governor."""
    pass


class ConfigInvalidError(GovernorError):
    """Configuration rejected at construction time.

    Raised for broken hysteresis (``cooldown_c >= threshold_c``), impossible
    memory budgets and duplicate device identities.
    """
    pass


class DeviceNotFoundError(GovernorError):
    """Operation referenced a device that is not a fleet member."""

    def __init__(self, device_id: str) -> None:
        self.device_id = device_id
        super().__init__(f"Device not found: {device_id}")


class TelemetryUnavailableError(GovernorError):
    """Telemetry could not be sampled from a device."""

    def __init__(self, device_id: str, reason: str = "") -> None:
        self.device_id = device_id
        self.reason = reason
        message = f"Telemetry unavailable for {device_id}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class ThermalExceededError(GovernorError):
    """Device temperature is at or above the breaker threshold."""

    def __init__(self, current_c: float, threshold_c: float) -> None:
        self.current_c = current_c
        self.threshold_c = threshold_c
        super().__init__(
            f"Thermal threshold exceeded: {current_c:.1f}°C >= {threshold_c:.1f}°C"
        )


class InsufficientMemoryError(GovernorError):
    """Allocation would exceed the usable memory budget."""

    def __init__(self, requested_mb: int, available_mb: int, label: str = "") -> None:
        self.requested_mb = requested_mb
        self.available_mb = available_mb
        self.label = label
        super().__init__(
            f"Insufficient memory: requested {requested_mb}MB, available {available_mb}MB"
        )


class DeviceUnreachableError(GovernorError):
    """Transport could not reach a device."""

    def __init__(self, device_id: str, reason: str = "") -> None:
        self.device_id = device_id
        self.reason = reason
        super().__init__(f"Device {device_id} unreachable: {reason or 'no response'}")


class StagingError(GovernorError):
    """A device refused or failed to stage a model."""

    def __init__(self, device_id: str, reason: str) -> None:
        self.device_id = device_id
        self.reason = reason
        super().__init__(f"Staging failed on {device_id}: {reason}")


class DeploymentPartialFailureError(GovernorError):
    """A fleet deployment was aborted before any member committed.

    Attributes:
        failed_members: Device id -> failure reason for every member whose
            staging failed or timed out within the offline grace period.
        deployment_id: Identifier of the aborted deployment, if assigned.
    """

    def __init__(
        self,
        failed_members: Mapping[str, str],
        deployment_id: Optional[str] = None,
    ) -> None:
        self.failed_members = dict(failed_members)
        self.deployment_id = deployment_id
        names = ", ".join(sorted(self.failed_members))
        super().__init__(f"Deployment aborted, staging failed on: {names}")

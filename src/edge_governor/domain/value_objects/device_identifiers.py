"""Device-related type-safe identifiers.

These value objects provide type safety for fleet identifiers
using Python's NewType for zero-runtime overhead.
"""

from __future__ import annotations

from typing import NewType

# Unique device identifier within a fleet (e.g., "jetson-01")
DeviceId = NewType("DeviceId", str)

# Deployment identifier assigned by the fleet governor
DeploymentId = NewType("DeploymentId", str)


def create_device_id(prefix: str, index: int) -> DeviceId:
    """Create a device identifier from a prefix and an index."""
    return DeviceId(f"{prefix}-{index:02d}")


def create_deployment_id(model_name: str, counter: int) -> DeploymentId:
    """Create a deployment identifier from model name and counter."""
    return DeploymentId(f"{model_name}-{counter:06d}")

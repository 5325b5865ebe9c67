"""Domain value objects for the edge governor.

Value objects are immutable objects without identity that represent
core concepts like device identifiers and quantization levels.
"""

from edge_governor.domain.value_objects.device_identifiers import (
    DeploymentId,
    DeviceId,
    create_deployment_id,
    create_device_id,
)
from edge_governor.domain.value_objects.quant_levels import (
    MOST_COMPRESSED,
    QUALITY_ORDER,
    QUANT_PROFILES,
    QuantLevel,
    QuantProfile,
)

__all__ = [
    "DeploymentId",
    "DeviceId",
    "create_deployment_id",
    "create_device_id",
    "MOST_COMPRESSED",
    "QUALITY_ORDER",
    "QUANT_PROFILES",
    "QuantLevel",
    "QuantProfile",
]

"""Edge accelerator device entities.

References:
    - Jetson Orin module specifications (unified memory, CUDA cores, TOPS)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from edge_governor.domain.value_objects.device_identifiers import DeviceId


class AcceleratorModel(Enum):
    """Supported accelerator modules."""
    ORIN_NANO_4GB = "orin_nano_4gb"
    ORIN_NANO_8GB = "orin_nano_8gb"
    ORIN_NX_8GB = "orin_nx_8gb"
    ORIN_NX_16GB = "orin_nx_16gb"
    AGX_ORIN_32GB = "agx_orin_32gb"
    AGX_ORIN_64GB = "agx_orin_64gb"
    UNKNOWN = "unknown"

    @property
    def memory_mb(self) -> int:
        """Unified memory capacity."""
        return _MODEL_SPECS[self][0]

    @property
    def cuda_cores(self) -> int:
        return _MODEL_SPECS[self][1]

    @property
    def tops(self) -> int:
        """Peak INT8 throughput."""
        return _MODEL_SPECS[self][2]

    @property
    def display_name(self) -> str:
        return _MODEL_SPECS[self][3]


# model -> (memory_mb, cuda_cores, tops, display name)
_MODEL_SPECS: dict[AcceleratorModel, tuple[int, int, int, str]] = {
    AcceleratorModel.ORIN_NANO_4GB: (4096, 512, 20, "Jetson Orin Nano 4GB"),
    AcceleratorModel.ORIN_NANO_8GB: (8192, 1024, 40, "Jetson Orin Nano 8GB"),
    AcceleratorModel.ORIN_NX_8GB: (8192, 1024, 70, "Jetson Orin NX 8GB"),
    AcceleratorModel.ORIN_NX_16GB: (16384, 1024, 100, "Jetson Orin NX 16GB"),
    AcceleratorModel.AGX_ORIN_32GB: (32768, 2048, 200, "Jetson AGX Orin 32GB"),
    AcceleratorModel.AGX_ORIN_64GB: (65536, 2048, 275, "Jetson AGX Orin 64GB"),
    AcceleratorModel.UNKNOWN: (0, 0, 0, "Unknown accelerator"),
}


@dataclass(frozen=True)
class DeviceInfo:
    """Identity and static description of a fleet device."""
    device_id: DeviceId
    model: AcceleratorModel = AcceleratorModel.UNKNOWN
    address: Optional[str] = None     # Transport address (IP, USB path, ...)
    hostname: Optional[str] = None


@dataclass(frozen=True)
class ComputeHint:
    """Backend selection hint for the external compute-dispatch layer."""
    prefer_simd_backend: bool       # Run on CPU SIMD instead of the accelerator
    memory_budget_mb: int           # Memory currently available to the workload
    accelerator_available: bool     # GPU present and not thermally gated

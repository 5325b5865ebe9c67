"""Application layer for the edge governor.

Orchestrates domain services to provide high-level functionality.
"""

from edge_governor.application.coordinator import EdgeGovernorCoordinator

__all__ = [
    "EdgeGovernorCoordinator",
]

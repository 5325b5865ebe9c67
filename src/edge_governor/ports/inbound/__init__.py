"""Inbound ports - interfaces offered by the edge governor."""

from edge_governor.ports.inbound.api import EdgeGovernorAPI

__all__ = [
    "EdgeGovernorAPI",
]

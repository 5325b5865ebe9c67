"""Inbound adapters for the edge governor.

Provides the REST API adapter for fleet and device management.
"""

from edge_governor.adapters.inbound.rest_api import create_app

__all__ = ["create_app"]

"""Ports - interfaces offered and consumed by the edge governor."""

"""Adapters connecting the edge governor to the outside world."""

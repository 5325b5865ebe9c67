"""Resource governor for fleets of thermally- and memory-constrained edge accelerators."""

__version__ = "0.1.0"

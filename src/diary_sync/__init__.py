"""Multi-replica diary synchronisation with conflict tracking."""

__version__ = "0.4.0"

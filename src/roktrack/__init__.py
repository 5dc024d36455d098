"""Roktrack - marker-guided autonomous mower control core."""

__version__ = "0.2.0"

"""Associative memory engine on a FalkorDB graph."""

__version__ = "0.1.0"

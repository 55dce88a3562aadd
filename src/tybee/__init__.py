"""Tybee board game library: catalog, copy inventory and recommendations."""

__version__ = "0.1.0"

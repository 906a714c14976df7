"""Offline content and image pipeline for the studio portfolio site."""

__version__ = "0.1.0"

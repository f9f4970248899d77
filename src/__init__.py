# src/__init__.py — v1
"""shipline — build, publish and deploy a two-service web app to one host."""

from shipline.version import __version__

__all__ = ["__version__"]

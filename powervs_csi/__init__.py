"""Helpers for a Power Virtual Server block storage CSI driver: options, cloud model, metadata, node updates and multipath devices."""

__version__ = "0.1.0"
"""Kubernetes resource discovery and service dependency explorer."""

__version__ = "0.1.0"

"""Chaos experiment operator core: resources, reconciliation, pod mutation and fault injection."""

__version__ = "1.6.0"
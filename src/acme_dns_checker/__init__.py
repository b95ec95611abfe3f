"""ACME DNS-01 propagation checker: HTTP API and command-line interface."""

__version__ = "0.1.0"

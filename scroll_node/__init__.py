"""Scroll L2 node: JSON-RPC, REST and signing operations for automation workflows."""

__version__ = "0.1.0"

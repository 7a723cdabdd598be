"""Polaris: agent reasoning pipeline over local and remote language models."""

__version__ = "0.1.0"

"""Phased, multi-account teardown of project-owned AWS resources."""

__version__ = "0.4.0"

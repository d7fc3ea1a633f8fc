"""Trace-driven simulation of page migration policies across tiered memory."""

__version__ = "0.1.0"
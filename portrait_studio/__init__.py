"""Formal portrait framing, AI-assisted editing and print-resolution export."""

__version__ = "1.0.0"

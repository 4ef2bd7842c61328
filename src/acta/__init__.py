"""Acta — a dated Markdown journal with an AI CLI side channel."""

__version__ = "0.1.0"

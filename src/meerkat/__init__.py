"""Meerkat CLI - upload and manage receipts from the terminal."""

__version__ = "0.1.0"

"""Chirper - threaded comments API for posts."""

__version__ = "0.1.0"

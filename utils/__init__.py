"""Shared utilities for the backend."""
from utils.log import setup_logging

__all__ = ["setup_logging"]

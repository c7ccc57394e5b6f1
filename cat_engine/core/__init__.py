"""
Core module for engine configuration and utilities.
"""
from .config import settings

__all__ = ["settings"]

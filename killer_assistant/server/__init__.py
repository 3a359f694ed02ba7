"""
HTTP backend for Killer Assistant.
"""

from .app import create_app

__all__ = ["create_app"]

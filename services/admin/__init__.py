"""
Admin server for configuration overrides and model inspection.
"""

from .server import create_app

__all__ = ["create_app"]

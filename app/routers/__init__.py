"""
API Routers
"""

from app.routers import builder

__all__ = ["builder"]

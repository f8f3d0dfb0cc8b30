"""
Analytics API routes.
"""

from .analytics import create_analytics_router

__all__ = ["create_analytics_router"]

"""
HTTP API for order fulfillment.

This package provides the FastAPI application that exposes:
- Order endpoints (initiate, confirm-payment, legacy save)
- Chat session status and a health check
"""

from api.main import app

__all__ = ["app"]

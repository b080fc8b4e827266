"""
API Application Factory
FastAPI app creation and configuration
"""

from inspection_engine.api.main import create_app

__all__ = ["create_app"]

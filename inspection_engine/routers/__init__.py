"""
API Routers
FastAPI route handlers
"""

from inspection_engine.routers import health, inspections, knowledge

__all__ = [
    "health",
    "inspections",
    "knowledge",
]

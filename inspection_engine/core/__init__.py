"""
Core module: configuration, database, logging, errors, retry, app container

Only ``settings`` is re-exported; ``inspection_engine.models`` imports
``core.sqlalchemy_types``, so this package must not import ``core.db``.
"""

from inspection_engine.core.config import settings

__all__ = ["settings"]

"""FastAPI route modules.

Exports all route modules for inclusion in the main application.
"""

from src.api.routes import addresses, batches, shipping

__all__ = [
    "addresses",
    "batches",
    "shipping",
]

"""Sheet storage"""

from .memory import InMemorySheetRepository

__all__ = [
    "InMemorySheetRepository",
]

"""Outbound persistence: API client and auto-save"""

from .api_client import SheetApiClient
from .autosave import SheetAutoSaver

__all__ = [
    "SheetApiClient",
    "SheetAutoSaver",
]

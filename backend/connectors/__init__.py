"""Task tracker connectors package."""
from connectors.base import BaseConnector
from connectors.clickup import ClickUpConnector

__all__ = [
    "BaseConnector",
    "ClickUpConnector",
]

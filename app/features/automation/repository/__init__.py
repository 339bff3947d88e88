"""
Persistence layer for the automation feature.
"""

from .postgres_store import PostgresAutomationStore
from .store import AutomationStore, AutomationStoreError

__all__ = ["AutomationStore", "AutomationStoreError", "PostgresAutomationStore"]

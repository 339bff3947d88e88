"""
Context store: the latest behavioural signals per user.

A dumb signal cache with merge-upsert semantics. Writers are independent
and unsynchronised; last write wins per field.
"""

from typing import Any

from app.features.automation.domain import ContextSnapshot
from app.features.automation.repository.store import AutomationStore
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class ContextStore:
    """Read and merge-upsert ContextSnapshots through an injected store."""

    def __init__(self, store: AutomationStore):
        self._store = store

    async def read(self, user_id: str) -> ContextSnapshot:
        """
        Return the user's snapshot, creating the zero-value default on first read.
        """
        snapshot = await self._store.get_context(user_id)
        if snapshot is not None:
            return snapshot

        logger.debug("Creating default context snapshot", user_id=user_id)
        return await self._store.upsert_context_fields(user_id, {})

    async def upsert(self, user_id: str, partial: dict[str, Any]) -> ContextSnapshot:
        """
        Merge `partial` into the user's snapshot and return the result.

        Only the supplied fields are written, so concurrent writers touching
        different fields never clobber each other.

        Raises:
            ContextUpdateError: unknown field or wrong value type
        """
        # Validate against the zero-value snapshot; the store merges by column
        validated = ContextSnapshot().merged(partial)
        changes = {key: getattr(validated, key) for key in partial}

        snapshot = await self._store.upsert_context_fields(user_id, changes)
        logger.info("Context updated", user_id=user_id, fields=sorted(changes))
        return snapshot

"""
Progress Store

Keyed persistence of progression snapshots. An unknown learner is not an
error: ``load`` returns (and stores) an empty progression. Backend failures
surface as ``ProgressStoreError`` and are never masked as empty state.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Dict

from levely_companion.errors import ProgressStoreError
from levely_companion.models import LevelyProgress

logger = logging.getLogger(__name__)


class ProgressStore:
    """Load/save contract. ``save`` overwrites the whole snapshot."""

    async def load(self, learner_id: str) -> LevelyProgress:
        raise NotImplementedError

    async def save(self, learner_id: str, progress: LevelyProgress) -> None:
        raise NotImplementedError


class InMemoryProgressStore(ProgressStore):
    """Process-local store, used in tests and when Supabase is not configured."""

    def __init__(self):
        self._store: Dict[str, LevelyProgress] = {}

    async def load(self, learner_id: str) -> LevelyProgress:
        if learner_id not in self._store:
            self._store[learner_id] = LevelyProgress.empty()
        return self._store[learner_id]

    async def save(self, learner_id: str, progress: LevelyProgress) -> None:
        self._store[learner_id] = progress


class SupabaseProgressStore(ProgressStore):
    """
    Stores one row per learner in a Supabase table.

    Table layout: ``learner_id`` (primary key), ``progress`` (jsonb holding
    ``LevelyProgress.to_dict()``), ``updated_at``.
    """

    def __init__(self, supabase_client, table: str = "levely_progress"):
        """
        Args:
            supabase_client: Supabase client instance
            table: Table holding the snapshots
        """
        self.supabase = supabase_client
        self.table = table

    async def load(self, learner_id: str) -> LevelyProgress:
        try:
            result = self.supabase.table(self.table) \
                .select("progress") \
                .eq("learner_id", learner_id) \
                .limit(1) \
                .execute()
        except Exception as e:
            logger.error(f"❌ [SupabaseProgressStore] Error loading progress for {learner_id}: {e}")
            raise ProgressStoreError(f"Failed to load progress: {e}", learner_id=learner_id) from e

        if not result.data:
            logger.info(f"🆕 [SupabaseProgressStore] No progress for {learner_id}, starting empty")
            progress = LevelyProgress.empty()
            await self.save(learner_id, progress)
            return progress

        raw = result.data[0].get("progress")
        try:
            if isinstance(raw, str):
                raw = json.loads(raw) if raw.strip() else None
            return LevelyProgress.from_dict(raw)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"❌ [SupabaseProgressStore] Stored progress for {learner_id} is malformed: {e}")
            raise ProgressStoreError(f"Malformed progress record: {e}", learner_id=learner_id) from e

    async def save(self, learner_id: str, progress: LevelyProgress) -> None:
        row = {
            "learner_id": learner_id,
            "progress": progress.to_dict(),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self.supabase.table(self.table).upsert(row, on_conflict="learner_id").execute()
        except Exception as e:
            logger.error(f"❌ [SupabaseProgressStore] Error saving progress for {learner_id}: {e}")
            raise ProgressStoreError(f"Failed to save progress: {e}", learner_id=learner_id) from e

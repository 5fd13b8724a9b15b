"""
Per-participant write serialization for the attendance pipeline.
"""
import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Tuple


class ParticipantLockRegistry:
    """
    Hands out one asyncio.Lock per (group_id, participant_id) pair so that
    record -> recompute -> evaluate runs single-writer for that pair.
    Locks are process-local.
    """

    def __init__(self):
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = defaultdict(asyncio.Lock)

    @asynccontextmanager
    async def hold(self, group_id: str, participant_id: str) -> AsyncIterator[None]:
        lock = self._locks[(group_id, participant_id)]
        async with lock:
            yield

    def is_locked(self, group_id: str, participant_id: str) -> bool:
        key = (group_id, participant_id)
        return key in self._locks and self._locks[key].locked()


participant_locks = ParticipantLockRegistry()

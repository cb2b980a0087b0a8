"""
In-process storage backend.

Keeps memories in a dict per table. Useful for development and tests; it
follows the same contract as the OpenSearch backend.
"""

import threading
from collections import defaultdict
from copy import deepcopy
from typing import Dict, List, Optional, Sequence

from ..models.core import Memory, SimilarityMatch
from .config import MemoryConfig
from .logging_config import get_logger
from .similarity import cosine_similarity, levenshtein_distance

logger = get_logger(__name__)


class InMemoryStorageBackend:
    """Thread-safe dict-backed memory storage."""

    def __init__(self, memory_config: Optional[MemoryConfig] = None, dedup_threshold: Optional[float] = None):
        if dedup_threshold is None:
            dedup_threshold = memory_config.dedup_threshold if memory_config else 0.95
        self.dedup_threshold = dedup_threshold
        # table -> memory id -> (memory, unique flag)
        self._tables: Dict[str, Dict[str, tuple]] = defaultdict(dict)
        self._lock = threading.Lock()

    @staticmethod
    def _matches(memory: Memory, user_ids: Sequence[str]) -> bool:
        return not user_ids or memory.user_id in user_ids

    def _rows(self, table_name: str, user_ids: Sequence[str], unique: bool) -> List[Memory]:
        return [
            memory for memory, is_unique in self._tables[table_name].values()
            if self._matches(memory, user_ids) and (is_unique or not unique)
        ]

    def get_memories_by_ids(self, user_ids: Sequence[str], count: Optional[int], unique: bool,
                            table_name: str) -> List[Memory]:
        with self._lock:
            rows = sorted(self._rows(table_name, user_ids, unique), key=lambda m: m.created_at, reverse=True)
        if count is not None:
            rows = rows[:max(0, count)]
        return [deepcopy(m) for m in rows]

    def get_memory_by_content(self, table_name: str, threshold: float, input_text: str, field_name: str,
                              field_sub_name: str, match_count: int) -> List[SimilarityMatch]:
        if field_name != 'content' or field_sub_name not in ('content', 'action'):
            raise ValueError(f'Unsupported content field: {field_name}.{field_sub_name}')

        with self._lock:
            rows = self._rows(table_name, [], False)

        scored = []
        for memory in rows:
            value = getattr(memory.content, field_sub_name) or ''
            distance = levenshtein_distance(value, input_text)
            if distance <= threshold:
                scored.append((distance, memory))

        scored.sort(key=lambda pair: pair[0])
        return [
            SimilarityMatch(memory=deepcopy(memory), similarity=float(distance), threshold=threshold)
            for distance, memory in scored[:max(0, match_count)]
        ]

    def search_memories(self, table_name: str, user_ids: Sequence[str], embedding: Sequence[float],
                        match_threshold: float, match_count: int, unique: bool) -> List[Memory]:
        with self._lock:
            rows = self._rows(table_name, user_ids, unique)

        scored = []
        for memory in rows:
            if not memory.has_embedding:
                continue
            similarity = cosine_similarity(memory.embedding, embedding)
            if similarity > match_threshold:
                scored.append((similarity, memory))

        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [deepcopy(memory) for _, memory in scored[:max(0, match_count)]]

    def create_memory(self, memory: Memory, table_name: str, unique: bool) -> None:
        with self._lock:
            is_unique = True
            if unique and memory.has_embedding:
                for existing in self._rows(table_name, [memory.user_id], False):
                    if existing.has_embedding and cosine_similarity(existing.embedding,
                                                                    memory.embedding) >= self.dedup_threshold:
                        logger.debug(f'Memory {memory.id} is a near-duplicate of {existing.id}')
                        is_unique = False
                        break
            self._tables[table_name][memory.id] = (deepcopy(memory), is_unique)
        logger.debug(f'Stored memory {memory.id} in {table_name} (unique={is_unique})')

    def remove_memory(self, memory_id: str, table_name: str) -> None:
        with self._lock:
            removed = self._tables[table_name].pop(memory_id, None)
        if removed is None:
            logger.warning(f'Memory {memory_id} not found for deletion')

    def remove_all_memories_by_user_ids(self, user_ids: Sequence[str], table_name: str) -> None:
        if not user_ids:
            return
        with self._lock:
            table = self._tables[table_name]
            doomed = [mid for mid, (memory, _) in table.items() if memory.user_id in user_ids]
            for mid in doomed:
                del table[mid]
        logger.debug(f'Removed {len(doomed)} memories for {len(user_ids)} users from {table_name}')

    def count_memories_by_user_ids(self, user_ids: Sequence[str], unique: bool, table_name: str) -> int:
        with self._lock:
            return len(self._rows(table_name, user_ids, unique))

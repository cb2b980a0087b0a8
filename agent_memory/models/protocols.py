"""
Contracts the memory layer requires of its external collaborators.
"""

from typing import Iterator, List, Optional, Protocol, Sequence

from .core import Memory, SimilarityMatch


class StorageBackend(Protocol):
    """Durable memory store partitioned by table name.

    ``unique`` on reads restricts results to records stored as unique.
    ``create_memory(unique=True)`` runs a similarity check against the
    user's existing records first and stores the new record as non-unique
    when a near-duplicate exists.
    """

    def get_memories_by_ids(self, user_ids: Sequence[str], count: Optional[int], unique: bool,
                            table_name: str) -> List[Memory]:
        ...

    def get_memory_by_content(self, table_name: str, threshold: float, input_text: str, field_name: str,
                              field_sub_name: str, match_count: int) -> List[SimilarityMatch]:
        ...

    def search_memories(self, table_name: str, user_ids: Sequence[str], embedding: Sequence[float],
                        match_threshold: float, match_count: int, unique: bool) -> List[Memory]:
        ...

    def create_memory(self, memory: Memory, table_name: str, unique: bool) -> None:
        ...

    def remove_memory(self, memory_id: str, table_name: str) -> None:
        ...

    def remove_all_memories_by_user_ids(self, user_ids: Sequence[str], table_name: str) -> None:
        ...

    def count_memories_by_user_ids(self, user_ids: Sequence[str], unique: bool, table_name: str) -> int:
        ...


class Embedder(Protocol):
    """Maps text to a fixed-length vector.

    Stored records and search queries may be embedded differently.
    """

    def embed(self, text: str) -> List[float]:
        ...

    def embed_query(self, text: str) -> List[float]:
        ...


class LanguageModel(Protocol):
    """Single-prompt text completion."""

    def complete(self, prompt: str, system_prompt: str) -> str:
        ...


# Participant display names; any iterator of strings qualifies.
NameGenerator = Iterator[str]

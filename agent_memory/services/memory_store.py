"""
Memory store: embedding attachment and retrieval of memories for one table.
"""

from typing import List, Optional, Sequence

from ..models.core import Memory, SimilarityMatch
from ..models.protocols import Embedder, StorageBackend
from ..utils.config import AppConfig, config
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

# Fixed parameters of the near-exact content lookup
CONTENT_MATCH_THRESHOLD = 2
CONTENT_MATCH_COUNT = 10


class EmptyContentError(ValueError):
    """The memory has no text to embed."""
    pass


class DimensionMismatchError(ValueError):
    """A query vector does not have the store's embedding dimension."""
    pass


def create_storage_backend(app_config: AppConfig = config) -> StorageBackend:
    """Build the storage backend selected by ``MEMORY_BACKEND``."""
    backend = app_config.memory.backend
    if backend == 'local':
        from ..utils.local_store import InMemoryStorageBackend
        return InMemoryStorageBackend(app_config.memory)
    if backend == 'opensearch':
        from ..utils.opensearch_client import OpenSearchStorageBackend
        return OpenSearchStorageBackend(app_config.opensearch, app_config.memory)
    raise ValueError(f'Unknown memory backend: {backend}')


def create_embedder(app_config: AppConfig = config) -> Embedder:
    from ..utils.bedrock_embed import BedrockEmbed
    return BedrockEmbed(app_config.bedrock_embed)


class MemoryStore:
    """Manage the memories of one table.

    Every operation is a single call to the embedder or storage backend;
    their errors reach the caller unchanged.
    """

    def __init__(self,
                 table_name: str,
                 backend: Optional[StorageBackend] = None,
                 embedder: Optional[Embedder] = None,
                 dimension: Optional[int] = None,
                 app_config: AppConfig = config):
        """
        Args:
            table_name: Table (namespace) this store reads and writes
            backend: Storage backend (built from config if None)
            embedder: Embedding client (Bedrock from config if None)
            dimension: Embedding length, defaults to the configured one
            app_config: Configuration used for defaults
        """
        self.table_name = table_name
        self.backend = backend if backend is not None else create_storage_backend(app_config)
        self.embedder = embedder if embedder is not None else create_embedder(app_config)
        self.dimension = dimension or app_config.bedrock_embed.dimension
        self.default_match_count = app_config.memory.default_match_count
        self.default_match_threshold = app_config.memory.default_match_threshold

        logger.info(f'Initialized MemoryStore for table: {table_name}')

    def add_embedding_to_memory(self, memory: Memory) -> Memory:
        """Attach an embedding to a memory that doesn't have one yet.

        The passed memory is updated in place and returned.

        Raises:
            EmptyContentError: If the memory has neither an embedding nor text
        """
        if memory.has_embedding:
            return memory

        if not memory.content.has_text:
            raise EmptyContentError(f'Memory {memory.id} content is empty')

        memory.embedding = self.embedder.embed(memory.content.content)
        logger.debug(f'Embedded memory {memory.id} ({len(memory.embedding)} dims)')
        return memory

    def get_memories_by_ids(self, user_ids: Sequence[str], count: Optional[int] = 10, unique: bool = True) -> List[Memory]:
        """Most recent memories of the given users.

        Args:
            user_ids: Users whose memories are returned
            count: Maximum number of memories (None for all)
            unique: Only return memories stored as unique
        """
        return self.backend.get_memories_by_ids(user_ids=list(user_ids),
                                                count=count,
                                                unique=unique,
                                                table_name=self.table_name)

    def get_memory_by_content(self, content: str) -> List[SimilarityMatch]:
        """Memories whose text nearly equals ``content``."""
        return self.backend.get_memory_by_content(table_name=self.table_name,
                                                  threshold=CONTENT_MATCH_THRESHOLD,
                                                  input_text=content,
                                                  field_name='content',
                                                  field_sub_name='content',
                                                  match_count=CONTENT_MATCH_COUNT)

    def search_memories_by_embedding(self,
                                     embedding: Sequence[float],
                                     match_threshold: Optional[float] = None,
                                     count: Optional[int] = None,
                                     user_ids: Optional[Sequence[str]] = None,
                                     unique: bool = False) -> List[Memory]:
        """
        Search for memories similar to an embedding vector.

        Args:
            embedding: Query vector, must have the store's dimension
            match_threshold: Minimum similarity (default 0.1)
            count: Maximum number of memories (default 10)
            user_ids: Restrict to these users (all users when empty)
            unique: Only return memories stored as unique

        Returns:
            Memories ranked by the backend

        Raises:
            DimensionMismatchError: If the vector length is wrong
        """
        if len(embedding) != self.dimension:
            raise DimensionMismatchError(f'Expected embedding of length {self.dimension}, got {len(embedding)}')

        match_threshold = self.default_match_threshold if match_threshold is None else match_threshold
        count = self.default_match_count if count is None else count

        logger.debug(f'Searching {self.table_name} (threshold={match_threshold}, count={count}, unique={unique})')
        return self.backend.search_memories(table_name=self.table_name,
                                            user_ids=list(user_ids or []),
                                            embedding=embedding,
                                            match_threshold=match_threshold,
                                            match_count=count,
                                            unique=bool(unique))

    def create_memory(self, memory: Memory, unique: bool = False) -> None:
        """Persist a memory; ``unique`` asks the backend to check for near-duplicates first."""
        self.backend.create_memory(memory=memory, table_name=self.table_name, unique=unique)
        logger.debug(f'Created memory {memory.id} in {self.table_name}')

    def remove_memory(self, memory_id: str) -> None:
        self.backend.remove_memory(memory_id=memory_id, table_name=self.table_name)

    def remove_all_memories_by_user_ids(self, user_ids: Sequence[str]) -> None:
        self.backend.remove_all_memories_by_user_ids(user_ids=list(user_ids), table_name=self.table_name)

    def count_memories_by_user_ids(self, user_ids: Sequence[str], unique: bool = True) -> int:
        return self.backend.count_memories_by_user_ids(user_ids=list(user_ids), unique=unique, table_name=self.table_name)

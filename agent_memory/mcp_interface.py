"""
MCP Interface Layer using fastmcp for agent orchestration.

Run with ``python -m agent_memory.mcp_interface``.
"""
from typing import Any, Dict, List, Optional, Tuple

from fastmcp import FastMCP

from .models.core import ConversationContext, Memory, MemoryContent
from .services.evaluation import EvaluatorSelector, SelectionParseError, default_registry
from .services.memory_store import MemoryStore
from .utils.config import config
from .utils.errors import BackendError, EmbeddingError, LanguageModelError
from .utils.health_check import get_system_info
from .utils.logging_config import get_logger
from .utils.timestamp_utils import to_datetime

logger = get_logger(__name__)

MESSAGES_TABLE = 'messages'

# Initialize FastMCP application
mcp = FastMCP('Agent Memory')
memory_store = MemoryStore(MESSAGES_TABLE)
evaluator_selector = EvaluatorSelector(default_registry())


def _require_user(user_id: str) -> None:
    if not user_id or not user_id.strip():
        raise ValueError('User ID is required')


@mcp.tool()
def remember(user_id: str,
             text: str,
             action: Optional[str] = None,
             unique: bool = False,
             timestamp: Optional[float] = None) -> str:
    """Embed and store a memory for a user.

    Args:
        user_id: User ID
        text: Memory text
        action: Optional action tag
        unique: Check for near-duplicates before storing
        timestamp: Unix time of the memory (default: now)

    Returns:
        The new memory ID
    """
    _require_user(user_id)
    memory = Memory(user_id=user_id, content=MemoryContent(content=text, action=action), created_at=to_datetime(timestamp))

    try:
        memory_store.add_embedding_to_memory(memory)
        memory_store.create_memory(memory, unique=unique)
    except (BackendError, EmbeddingError) as e:
        logger.error(f'Failed to store memory for user {user_id}: {e}')
        raise

    logger.debug(f'MCP stored memory {memory.id} for user {user_id}')
    return memory.id


@mcp.tool()
def recall(user_id: str, query: str, top_k: int = 10) -> List[Tuple[str, str]]:
    """Search a user's memories by meaning.

    Args:
        user_id: User ID
        query: Natural language query
        top_k: Maximum number of results to return (default: 10)

    Returns:
        List of tuples (memory_id, text)
    """
    _require_user(user_id)
    if not query or not query.strip():
        return []

    try:
        embedding = memory_store.embedder.embed_query(query)
        memories = memory_store.search_memories_by_embedding(embedding, count=top_k, user_ids=[user_id])
    except (BackendError, EmbeddingError) as e:
        logger.error(f'Memory search failed for user {user_id}: {e}')
        raise

    result = [(memory.id, memory.content.content) for memory in memories]
    logger.debug(f'MCP recall returned {len(result)} memories for user {user_id}')
    return result


@mcp.tool()
def recent_memories(user_id: str, count: int = 10) -> List[Tuple[str, str]]:
    """Most recent unique memories of a user, newest first."""
    _require_user(user_id)
    memories = memory_store.get_memories_by_ids([user_id], count=count)
    return [(memory.id, memory.content.content) for memory in memories]


@mcp.tool()
def count_memories(user_id: str, unique: bool = True) -> int:
    """Number of stored memories of a user."""
    _require_user(user_id)
    return memory_store.count_memories_by_user_ids([user_id], unique=unique)


@mcp.tool()
def forget_user(user_id: str) -> int:
    """Delete every memory of a user and return how many there were."""
    _require_user(user_id)
    count = memory_store.count_memories_by_user_ids([user_id], unique=False)
    memory_store.remove_all_memories_by_user_ids([user_id])
    logger.info(f'Removed {count} memories of user {user_id}')
    return count


@mcp.tool()
def select_evaluators(recent_messages: str, sender_name: str, agent_name: str) -> List[str]:
    """Names of the evaluators that should run after this conversation turn."""
    context = ConversationContext(recent_messages=recent_messages, sender_name=sender_name, agent_name=agent_name)
    try:
        return evaluator_selector.select(context)
    except (SelectionParseError, LanguageModelError) as e:
        logger.error(f'Evaluator selection failed: {e}')
        raise


@mcp.tool()
def system_health() -> Dict[str, Any]:
    """Configuration summary and health of the backing services."""
    return get_system_info()


if __name__ == '__main__':
    mcp.run(transport=config.mcp.transport, host=config.mcp.host, port=config.mcp.port)

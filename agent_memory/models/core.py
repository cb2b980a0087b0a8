"""
Core data models for the memory layer and evaluator selection.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

EMBEDDING_DIMENSION = 1536


def embedding_zero_vector(dimension: int = EMBEDDING_DIMENSION) -> List[float]:
    """Placeholder embedding for records whose content has no text."""
    return [0.0] * dimension


@dataclass
class MemoryContent:
    """Structured payload of a memory or example message."""
    content: str = ''
    action: Optional[str] = None

    @property
    def has_text(self) -> bool:
        return bool(self.content and self.content.strip())

    @property
    def has_action(self) -> bool:
        return bool(self.action)

    def to_dict(self) -> Dict[str, Any]:
        return {'content': self.content, 'action': self.action}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'MemoryContent':
        data = data or {}
        return cls(content=data.get('content') or '', action=data.get('action') or None)


@dataclass
class Memory:
    """An embeddable text record scoped to a user.

    ``id`` and ``user_id`` are UUID strings fixed at construction. The
    memory store attaches ``embedding`` before the record is persisted;
    nothing else changes afterwards.
    """
    user_id: str
    content: MemoryContent
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    embedding: Optional[List[float]] = None
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None and len(self.embedding) > 0

    def to_document(self, unique: bool = True) -> Dict[str, Any]:
        """Flat representation stored by the backends."""
        return {
            'id': self.id,
            'user_id': self.user_id,
            'content': self.content.to_dict(),
            'embedding': list(self.embedding) if self.embedding is not None else None,
            'unique': unique,
            'created_at': self.created_at.isoformat(),
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> 'Memory':
        created_at = doc.get('created_at')
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        elif not isinstance(created_at, datetime):
            created_at = datetime.fromtimestamp(0)

        embedding = doc.get('embedding')
        return cls(id=doc['id'],
                   user_id=doc['user_id'],
                   content=MemoryContent.from_dict(doc.get('content')),
                   embedding=list(embedding) if embedding else None,
                   created_at=created_at)


@dataclass
class SimilarityMatch:
    """A memory returned by a content-similarity query.

    ``similarity`` follows the backend's scoring convention; ``threshold``
    is the threshold the query ran with.
    """
    memory: Memory
    similarity: float
    threshold: float


@dataclass(frozen=True)
class ActionExample:
    """One message of an evaluator example, spoken by a placeholder user."""
    user: str
    content: MemoryContent


@dataclass(frozen=True)
class EvaluationExample:
    """Example conversation showing when an evaluator applies.

    All text may reference participants as ``{{user1}}`` .. ``{{user5}}``.
    """
    context: str
    messages: Tuple[ActionExample, ...]
    outcome: str


@dataclass(frozen=True)
class Evaluator:
    """A post-processing routine selectable per conversational turn."""
    name: str
    description: str
    condition: str
    examples: Tuple[EvaluationExample, ...] = ()


@dataclass
class RenderedExample:
    """An evaluation example with its placeholders replaced by names."""
    context: str
    messages: List[str]
    outcome: str

    def format(self) -> str:
        messages = '\n'.join(self.messages)
        return f'Context:\n{self.context}\n\nMessages:\n{messages}\n\nOutcome:\n{self.outcome}'


@dataclass
class ConversationContext:
    """The conversation window an evaluator decision is made on."""
    recent_messages: str
    sender_name: str
    agent_name: str

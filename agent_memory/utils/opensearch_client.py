"""
OpenSearch storage backend for memories.

Each memory table is its own index, ``{index_name}_{table_name}``. Documents
keep the memory id in an ``id`` keyword field rather than ``_id`` because
serverless vector collections assign their own document ids. Vector
queries carry their filters inside the ``knn`` clause so the lucene engine
applies them while searching rather than to the top-k afterwards.
"""

import time
from typing import Any, Dict, List, Optional, Sequence

import boto3
from opensearchpy import OpenSearch, RequestsHttpConnection
from opensearchpy.exceptions import OpenSearchException
from requests_aws4auth import AWS4Auth

from ..models.core import Memory, SimilarityMatch
from .config import MemoryConfig, OpenSearchConfig
from .errors import BackendError
from .logging_config import get_logger
from .similarity import cosine_similarity

logger = get_logger(__name__)

# Upper bound on a single search page; used when the caller asks for everything.
MAX_RESULT_WINDOW = 10000


class OpenSearchError(BackendError):
    """Custom exception for OpenSearch errors."""
    pass


def cosine_to_score(similarity: float) -> float:
    """k-NN score of a cosine similarity under the ``cosinesimil`` space."""
    return (1.0 + similarity) / 2.0


class OpenSearchStorageBackend:
    """Memory storage on OpenSearch with AWS authentication."""

    def __init__(self, config: OpenSearchConfig, memory_config: MemoryConfig, client: Optional[OpenSearch] = None):
        """
        Initialize OpenSearch backend.

        Args:
            config: OpenSearchConfig instance with connection parameters
            memory_config: MemoryConfig instance with the dedup threshold
            client: Pre-built OpenSearch client (created from config if None)
        """
        self.config = config
        self.dedup_threshold = memory_config.dedup_threshold
        self._known_indexes = set()

        if client is None:
            credentials = boto3.Session().get_credentials()
            auth = AWS4Auth(region=config.region, service=config.service, refreshable_credentials=credentials)
            endpoint = config.endpoint
            if '://' in endpoint:
                # Remove protocol if present
                endpoint = endpoint.split('://', 1)[1]

            client = OpenSearch(hosts=[{
                'host': endpoint,
                'port': config.port
            }],
                                http_auth=auth,
                                use_ssl=True,
                                verify_certs=True,
                                connection_class=RequestsHttpConnection)

        self.client = client
        logger.info(f'Initialized OpenSearch backend for endpoint: {config.endpoint}')

    def index_name(self, table_name: str) -> str:
        return f'{self.config.index_name}_{table_name}'

    def _index_body(self) -> Dict[str, Any]:
        return {
            'mappings': {
                'properties': {
                    'id': {
                        'type': 'keyword'
                    },
                    'user_id': {
                        'type': 'keyword'
                    },
                    'content': {
                        'properties': {
                            'content': {
                                'type': 'text',
                                'fields': {
                                    'raw': {
                                        'type': 'keyword',
                                        'ignore_above': 8191
                                    }
                                }
                            },
                            'action': {
                                'type': 'keyword'
                            }
                        }
                    },
                    'embedding': {
                        'type': 'knn_vector',
                        'dimension': self.config.dimension,
                        'method': {
                            'name': 'hnsw',
                            'space_type': 'cosinesimil',
                            'engine': 'lucene'
                        }
                    },
                    'unique': {
                        'type': 'boolean'
                    },
                    'created_at': {
                        'type': 'date'
                    }
                }
            },
            'settings': {
                'index': {
                    'knn': True
                }
            }
        }

    def create_index_if_not_exists(self, table_name: str) -> str:
        """
        Create the index for a memory table if it doesn't exist.

        Returns:
            'exists', 'created' or 'failed'
        """
        index_name = self.index_name(table_name)
        if index_name in self._known_indexes:
            return 'exists'

        try:
            if self.client.indices.exists(index=index_name):
                logger.debug(f'Index {index_name} already exists')
                self._known_indexes.add(index_name)
                return 'exists'

            response = self.client.indices.create(index=index_name, body=self._index_body())
            logger.info(f'Created index {index_name}')
            if not response.get('acknowledged', False):
                return 'failed'

            if self.config.index_sync_seconds > 0:
                logger.info(f'Waiting {self.config.index_sync_seconds}s for index {index_name} sync-up...')
                time.sleep(self.config.index_sync_seconds)
            self._known_indexes.add(index_name)
            return 'created'
        except OpenSearchException as e:
            logger.error(f'Error creating index {index_name}: {e}')
            raise OpenSearchError(f'Failed to create index: {e}')

    def _search(self, table_name: str, body: Dict[str, Any], action: str) -> List[Dict[str, Any]]:
        self.create_index_if_not_exists(table_name)
        index_name = self.index_name(table_name)
        try:
            response = self.client.search(index=index_name, body=body)
        except OpenSearchException as e:
            logger.error(f'Error performing {action} on {index_name}: {e}')
            raise OpenSearchError(f'{action.capitalize()} failed: {e}')

        hits = response['hits']['hits']
        logger.debug(f'{action.capitalize()} returned {len(hits)} hits from {index_name}')
        return hits

    @staticmethod
    def _filters(user_ids: Sequence[str], unique: bool) -> List[Dict[str, Any]]:
        filters = []
        if user_ids:
            filters.append({'terms': {'user_id': list(user_ids)}})
        if unique:
            filters.append({'term': {'unique': True}})
        return filters

    @staticmethod
    def _size(count: Optional[int]) -> int:
        if count is None:
            return MAX_RESULT_WINDOW
        return max(0, min(count, MAX_RESULT_WINDOW))

    def get_memories_by_ids(self, user_ids: Sequence[str], count: Optional[int], unique: bool,
                            table_name: str) -> List[Memory]:
        """Most recent memories of the given users, newest first."""
        body = {
            'size': self._size(count),
            'query': {
                'bool': {
                    'filter': self._filters(user_ids, unique)
                }
            },
            'sort': [{
                'created_at': {
                    'order': 'desc'
                }
            }]
        }
        hits = self._search(table_name, body, 'memory listing')
        return [Memory.from_document(hit['_source']) for hit in hits]

    def get_memory_by_content(self, table_name: str, threshold: float, input_text: str, field_name: str,
                              field_sub_name: str, match_count: int) -> List[SimilarityMatch]:
        """Memories whose text is within ``threshold`` edits of ``input_text``.

        OpenSearch caps fuzziness at two edits.
        """
        field = f'{field_name}.{field_sub_name}.raw'
        body = {
            'size': self._size(match_count),
            'query': {
                'fuzzy': {
                    field: {
                        'value': input_text,
                        'fuzziness': int(min(threshold, 2))
                    }
                }
            }
        }
        hits = self._search(table_name, body, 'content search')
        return [
            SimilarityMatch(memory=Memory.from_document(hit['_source']), similarity=float(hit['_score']), threshold=threshold)
            for hit in hits
        ]

    def _knn_hits(self,
                  table_name: str,
                  embedding: Sequence[float],
                  k: int,
                  filters: List[Dict[str, Any]],
                  action: str,
                  min_score: Optional[float] = None) -> List[Dict[str, Any]]:
        knn = {'vector': list(embedding), 'k': k}
        if filters:
            # Applied during the graph search, so k counts only matching documents
            knn['filter'] = {'bool': {'filter': filters}}

        body = {'size': k, 'query': {'knn': {'embedding': knn}}}
        if min_score is not None:
            body['min_score'] = min_score
        return self._search(table_name, body, action)

    def search_memories(self, table_name: str, user_ids: Sequence[str], embedding: Sequence[float],
                        match_threshold: float, match_count: int, unique: bool) -> List[Memory]:
        """Nearest memories whose cosine similarity exceeds ``match_threshold``."""
        if match_count <= 0:
            return []

        hits = self._knn_hits(table_name,
                              embedding,
                              self._size(match_count),
                              self._filters(user_ids, unique),
                              'vector search',
                              min_score=cosine_to_score(match_threshold))

        # min_score is inclusive; the threshold itself is not a match
        memories = []
        for hit in hits:
            memory = Memory.from_document(hit['_source'])
            if memory.has_embedding and cosine_similarity(memory.embedding, embedding) > match_threshold:
                memories.append(memory)
        return memories

    def _has_near_duplicate(self, memory: Memory, table_name: str) -> bool:
        hits = self._knn_hits(table_name,
                              memory.embedding,
                              1,
                              self._filters([memory.user_id], False),
                              'dedup check',
                              min_score=cosine_to_score(self.dedup_threshold))
        for hit in hits:
            existing = hit['_source'].get('embedding')
            if existing and cosine_similarity(existing, memory.embedding) >= self.dedup_threshold:
                logger.debug(f'Memory {memory.id} is a near-duplicate of {hit["_source"].get("id")}')
                return True
        return False

    def create_memory(self, memory: Memory, table_name: str, unique: bool) -> None:
        """Store a memory; with ``unique`` set, near-duplicates are stored as non-unique."""
        self.create_index_if_not_exists(table_name)

        is_unique = True
        if unique and memory.has_embedding:
            is_unique = not self._has_near_duplicate(memory, table_name)

        index_name = self.index_name(table_name)
        try:
            response = self.client.index(index=index_name, body=memory.to_document(unique=is_unique))
        except OpenSearchException as e:
            logger.error(f'Error indexing memory {memory.id}: {e}')
            raise OpenSearchError(f'Failed to index memory: {e}')

        if response.get('result') not in ['created', 'updated']:
            logger.warning(f'Unexpected result indexing memory {memory.id}: {response}')
            raise OpenSearchError(f'Memory {memory.id} was not indexed: {response.get("result")}')

        logger.debug(f'Indexed memory {memory.id} in {index_name} (unique={is_unique})')

    def _delete_hits(self, table_name: str, hits: List[Dict[str, Any]]) -> int:
        index_name = self.index_name(table_name)
        deleted = 0
        for hit in hits:
            try:
                response = self.client.delete(index=index_name, id=hit['_id'])
            except OpenSearchException as e:
                # OpenSearchException args: (status_code, error_type, error_info)
                if len(e.args) >= 2 and (e.args[0] == 404 or e.args[1] == 'not_found'):
                    logger.warning(f'Document {hit["_id"]} not found for deletion')
                    continue
                logger.error(f'Error deleting document {hit["_id"]}: {e}')
                raise OpenSearchError(f'Failed to delete document: {e}')
            if response.get('result') == 'deleted':
                deleted += 1
        return deleted

    def remove_memory(self, memory_id: str, table_name: str) -> None:
        body = {'size': MAX_RESULT_WINDOW, '_source': False, 'query': {'term': {'id': memory_id}}}
        hits = self._search(table_name, body, 'memory lookup')
        if not hits:
            logger.warning(f'Memory {memory_id} not found for deletion')
            return
        self._delete_hits(table_name, hits)
        logger.debug(f'Removed memory {memory_id} from {self.index_name(table_name)}')

    def remove_all_memories_by_user_ids(self, user_ids: Sequence[str], table_name: str) -> None:
        if not user_ids:
            return
        body = {'size': MAX_RESULT_WINDOW, '_source': False, 'query': {'terms': {'user_id': list(user_ids)}}}
        hits = self._search(table_name, body, 'memory lookup')
        deleted = self._delete_hits(table_name, hits)
        logger.debug(f'Removed {deleted} memories for {len(user_ids)} users from {self.index_name(table_name)}')

    def count_memories_by_user_ids(self, user_ids: Sequence[str], unique: bool, table_name: str) -> int:
        self.create_index_if_not_exists(table_name)
        index_name = self.index_name(table_name)
        body = {'query': {'bool': {'filter': self._filters(user_ids, unique)}}}
        try:
            response = self.client.count(index=index_name, body=body)
        except OpenSearchException as e:
            logger.error(f'Error counting memories in {index_name}: {e}')
            raise OpenSearchError(f'Count failed: {e}')
        return int(response['count'])

    def health_check(self) -> bool:
        """
        Perform a health check on the OpenSearch service.

        Returns:
            True if service is healthy, False otherwise
        """
        try:
            response = self.client.indices.exists(index=self.index_name('health'))
            return response in [True, False]

        except Exception as e:
            logger.error(f'OpenSearch health check failed: {e}')
            return False

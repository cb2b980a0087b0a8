"""Unit tests for the OpenSearch storage backend against a mocked client."""

from unittest.mock import MagicMock

import pytest
from opensearchpy.exceptions import NotFoundError, TransportError

from agent_memory.models.core import Memory, MemoryContent
from agent_memory.utils.config import MemoryConfig, OpenSearchConfig
from agent_memory.utils.errors import BackendError
from agent_memory.utils.opensearch_client import MAX_RESULT_WINDOW, OpenSearchError, OpenSearchStorageBackend

TABLE = 'messages'
INDEX = 'agent_memory_messages'


def _config() -> OpenSearchConfig:
    return OpenSearchConfig(endpoint='https://example.aoss.amazonaws.com',
                            port=443,
                            region='us-east-1',
                            service='aoss',
                            index_name='agent_memory',
                            dimension=2,
                            index_sync_seconds=0)


def _memory_config() -> MemoryConfig:
    return MemoryConfig(backend='opensearch',
                        default_match_count=10,
                        default_match_threshold=0.1,
                        dedup_threshold=0.95)


def _hit(memory: Memory, unique: bool = True, doc_id: str = 'doc-1', score: float = 1.0) -> dict:
    return {'_id': doc_id, '_score': score, '_source': memory.to_document(unique=unique)}


def _hits(*hits) -> dict:
    return {'hits': {'total': {'value': len(hits)}, 'hits': list(hits)}}


@pytest.fixture
def client() -> MagicMock:
    client = MagicMock()
    client.indices.exists.return_value = True
    client.search.return_value = _hits()
    client.index.return_value = {'result': 'created'}
    client.delete.return_value = {'result': 'deleted'}
    return client


@pytest.fixture
def backend(client) -> OpenSearchStorageBackend:
    return OpenSearchStorageBackend(_config(), _memory_config(), client=client)


@pytest.fixture
def memory() -> Memory:
    return Memory(user_id='u1', content=MemoryContent(content='I like tea', action='WAIT'), embedding=[1.0, 0.0])


class TestIndexManagement:

    def test_index_per_table(self, backend) -> None:
        assert backend.index_name(TABLE) == INDEX

    def test_creates_missing_index_once(self, backend, client) -> None:
        client.indices.exists.return_value = False
        client.indices.create.return_value = {'acknowledged': True}

        assert backend.create_index_if_not_exists(TABLE) == 'created'
        assert backend.create_index_if_not_exists(TABLE) == 'exists'

        client.indices.create.assert_called_once()
        body = client.indices.create.call_args.kwargs['body']
        assert body['mappings']['properties']['embedding']['dimension'] == 2
        assert body['mappings']['properties']['embedding']['method']['engine'] == 'lucene'
        assert body['mappings']['properties']['content']['properties']['content']['fields']['raw']['type'] == 'keyword'

    def test_unacknowledged_create(self, backend, client) -> None:
        client.indices.exists.return_value = False
        client.indices.create.return_value = {'acknowledged': False}

        assert backend.create_index_if_not_exists(TABLE) == 'failed'

    def test_create_error_is_wrapped(self, backend, client) -> None:
        client.indices.exists.side_effect = TransportError(500, 'internal', {})

        with pytest.raises(OpenSearchError):
            backend.create_index_if_not_exists(TABLE)


class TestQueries:

    def test_get_memories_by_ids(self, backend, client, memory) -> None:
        client.search.return_value = _hits(_hit(memory))

        result = backend.get_memories_by_ids(['u1', 'u2'], 5, True, TABLE)

        assert result == [memory]
        kwargs = client.search.call_args.kwargs
        assert kwargs['index'] == INDEX
        assert kwargs['body']['size'] == 5
        assert kwargs['body']['query']['bool']['filter'] == [{'terms': {'user_id': ['u1', 'u2']}},
                                                              {'term': {'unique': True}}]
        assert kwargs['body']['sort'] == [{'created_at': {'order': 'desc'}}]

    def test_unbounded_listing_uses_result_window(self, backend, client) -> None:
        backend.get_memories_by_ids(['u1'], None, False, TABLE)

        body = client.search.call_args.kwargs['body']
        assert body['size'] == MAX_RESULT_WINDOW
        assert body['query']['bool']['filter'] == [{'terms': {'user_id': ['u1']}}]

    def test_get_memory_by_content(self, backend, client, memory) -> None:
        client.search.return_value = _hits(_hit(memory, score=3.5))

        matches = backend.get_memory_by_content(TABLE, 2, 'I like tee', 'content', 'content', 10)

        assert len(matches) == 1
        assert matches[0].memory == memory
        assert matches[0].similarity == 3.5
        assert matches[0].threshold == 2
        body = client.search.call_args.kwargs['body']
        assert body['query'] == {'fuzzy': {'content.content.raw': {'value': 'I like tee', 'fuzziness': 2}}}

    def test_search_memories_applies_cosine_threshold(self, backend, client, memory) -> None:
        opposite = Memory(user_id='u1', content=MemoryContent(content='no'), embedding=[-1.0, 0.0])
        client.search.return_value = _hits(_hit(memory), _hit(opposite, doc_id='doc-2'))

        result = backend.search_memories(TABLE, ['u1'], [1.0, 0.0], 0.1, 5, False)

        assert [m.id for m in result] == [memory.id]
        body = client.search.call_args.kwargs['body']
        assert body['size'] == 5
        assert body['min_score'] == pytest.approx(0.55)
        assert body['query'] == {
            'knn': {
                'embedding': {
                    'vector': [1.0, 0.0],
                    'k': 5,
                    'filter': {
                        'bool': {
                            'filter': [{'terms': {'user_id': ['u1']}}]
                        }
                    }
                }
            }
        }

    def test_search_without_filters_is_plain_knn(self, backend, client) -> None:
        backend.search_memories(TABLE, [], [1.0, 0.0], 0.1, 5, False)

        assert client.search.call_args.kwargs['body']['query'] == {'knn': {'embedding': {'vector': [1.0, 0.0], 'k': 5}}}

    def test_unique_search_filters_inside_knn(self, backend, client) -> None:
        backend.search_memories(TABLE, ['u1', 'u2'], [1.0, 0.0], 0.1, 5, True)

        knn = client.search.call_args.kwargs['body']['query']['knn']['embedding']
        assert knn['filter']['bool']['filter'] == [{'terms': {'user_id': ['u1', 'u2']}}, {'term': {'unique': True}}]

    def test_search_with_zero_count(self, backend, client) -> None:
        assert backend.search_memories(TABLE, [], [1.0, 0.0], 0.1, 0, False) == []
        client.search.assert_not_called()

    def test_search_error_is_backend_error(self, backend, client) -> None:
        client.search.side_effect = TransportError(503, 'unavailable', {})

        with pytest.raises(BackendError):
            backend.search_memories(TABLE, [], [1.0, 0.0], 0.1, 5, False)

    def test_count(self, backend, client) -> None:
        client.count.return_value = {'count': 7}

        assert backend.count_memories_by_user_ids(['u1'], True, TABLE) == 7
        assert client.count.call_args.kwargs['body'] == {
            'query': {
                'bool': {
                    'filter': [{'terms': {'user_id': ['u1']}}, {'term': {'unique': True}}]
                }
            }
        }


class TestWrites:

    def test_create_without_check(self, backend, client, memory) -> None:
        backend.create_memory(memory, TABLE, False)

        client.search.assert_not_called()
        document = client.index.call_args.kwargs['body']
        assert client.index.call_args.kwargs['index'] == INDEX
        assert document['id'] == memory.id
        assert document['content'] == {'content': 'I like tea', 'action': 'WAIT'}
        assert document['unique'] is True

    def test_create_marks_near_duplicate(self, backend, client, memory) -> None:
        existing = Memory(user_id='u1', content=MemoryContent(content='I like tea!'), embedding=[0.99, 0.01])
        client.search.return_value = _hits(_hit(existing))

        backend.create_memory(memory, TABLE, True)

        assert client.index.call_args.kwargs['body']['unique'] is False
        dedup_body = client.search.call_args.kwargs['body']
        assert dedup_body['size'] == 1
        assert dedup_body['min_score'] == pytest.approx(0.975)
        knn = dedup_body['query']['knn']['embedding']
        assert knn['k'] == 1
        assert knn['filter'] == {'bool': {'filter': [{'terms': {'user_id': ['u1']}}]}}
        assert 'bool' not in dedup_body['query']

    def test_create_keeps_distinct_unique(self, backend, client, memory) -> None:
        other = Memory(user_id='u1', content=MemoryContent(content='coffee'), embedding=[0.0, 1.0])
        client.search.return_value = _hits(_hit(other))

        backend.create_memory(memory, TABLE, True)

        assert client.index.call_args.kwargs['body']['unique'] is True

    def test_create_unexpected_result(self, backend, client, memory) -> None:
        client.index.return_value = {'result': 'noop'}

        with pytest.raises(OpenSearchError):
            backend.create_memory(memory, TABLE, False)

    def test_remove_memory(self, backend, client, memory) -> None:
        client.search.return_value = _hits({'_id': 'doc-9', '_score': 1.0})

        backend.remove_memory(memory.id, TABLE)

        assert client.search.call_args.kwargs['body']['query'] == {'term': {'id': memory.id}}
        client.delete.assert_called_once_with(index=INDEX, id='doc-9')

    def test_remove_missing_memory(self, backend, client) -> None:
        backend.remove_memory('missing', TABLE)
        client.delete.assert_not_called()

    def test_remove_tolerates_concurrent_delete(self, backend, client) -> None:
        client.search.return_value = _hits({'_id': 'doc-1', '_score': 1.0}, {'_id': 'doc-2', '_score': 1.0})
        client.delete.side_effect = [NotFoundError(404, 'not_found', {}), {'result': 'deleted'}]

        backend.remove_all_memories_by_user_ids(['u1'], TABLE)

        assert client.delete.call_count == 2

    def test_remove_all_with_no_users_is_noop(self, backend, client) -> None:
        backend.remove_all_memories_by_user_ids([], TABLE)
        client.search.assert_not_called()

    def test_delete_error_is_wrapped(self, backend, client) -> None:
        client.search.return_value = _hits({'_id': 'doc-1', '_score': 1.0})
        client.delete.side_effect = TransportError(500, 'internal', {})

        with pytest.raises(OpenSearchError):
            backend.remove_all_memories_by_user_ids(['u1'], TABLE)

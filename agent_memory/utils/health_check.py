"""
Health check utilities for the memory layer's external services.
"""

from typing import Any, Dict

from .bedrock_embed import BedrockEmbed
from .bedrock_llm import BedrockLLM
from .config import config
from .logging_config import get_logger
from .opensearch_client import OpenSearchStorageBackend

logger = get_logger(__name__)


def check_health() -> bool:
    """Check the health of all system components.

    Returns:
        True if all components are healthy, False otherwise
    """
    health_status = get_health_status()
    all_healthy = all(status.get('healthy', False) for status in health_status.values())

    if all_healthy:
        logger.info('All system components are healthy')
    else:
        unhealthy = [name for name, status in health_status.items() if not status.get('healthy', False)]
        logger.warning(f'Unhealthy components: {", ".join(unhealthy)}')

    return all_healthy


def _probe(service: str, factory, detail: Dict[str, Any]) -> Dict[str, Any]:
    try:
        healthy = factory().health_check()
        return {'healthy': healthy, 'service': service, **detail}
    except Exception as e:
        logger.error(f'{service} health probe failed: {e}')
        return {'healthy': False, 'service': service, 'error': str(e)}


def get_health_status() -> Dict[str, Any]:
    """Get detailed health status of all components.

    Returns:
        Dictionary with health status of each component
    """
    health_status = {
        'bedrock_llm': _probe('Amazon Bedrock LLM', lambda: BedrockLLM(config.bedrock_llm),
                              {'model': config.bedrock_llm.model_id}),
        'bedrock_embed': _probe('Amazon Bedrock Embed', lambda: BedrockEmbed(config.bedrock_embed),
                                {'model': config.bedrock_embed.model_id}),
    }

    if config.memory.backend == 'opensearch':
        health_status['opensearch'] = _probe('Amazon OpenSearch',
                                             lambda: OpenSearchStorageBackend(config.opensearch, config.memory),
                                             {'endpoint': config.opensearch.endpoint})
    else:
        health_status['storage'] = {'healthy': True, 'service': 'In-process memory store'}

    return health_status


def get_system_info() -> Dict[str, Any]:
    """Get system information and configuration.

    Returns:
        Dictionary with system information
    """
    return {
        'service_name': 'agent-memory',
        'version': '0.1.0',
        'configuration': {
            'bedrock_llm_model': config.bedrock_llm.model_id,
            'bedrock_embed_model': config.bedrock_embed.model_id,
            'embedding_dimension': config.bedrock_embed.dimension,
            'memory_backend': config.memory.backend,
            'aws_region': config.bedrock_llm.region
        },
        'health_status': get_health_status()
    }

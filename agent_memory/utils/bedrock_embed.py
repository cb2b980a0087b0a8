"""
Amazon Bedrock embedding client wrapper with error handling.
"""

import json
import random
import time
from typing import List

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..models.core import embedding_zero_vector
from .config import BedrockEmbedConfig
from .errors import EmbeddingError
from .logging_config import get_logger

logger = get_logger(__name__)


class BedrockEmbedError(EmbeddingError):
    """Custom exception for Bedrock embedding errors."""
    pass


class BedrockEmbed:
    """Amazon Bedrock embedding client.

    Retries only when ``retry_attempts`` is configured above 1.
    """

    def __init__(self, config: BedrockEmbedConfig, client=None):
        """
        Initialize Bedrock embedding client.

        Args:
            config: BedrockEmbedConfig instance with connection parameters
            client: Pre-built bedrock-runtime client (created from config if None)
        """
        self.config = config
        self.model_id = config.model_id
        self.output_embedding_length = config.dimension

        self.bedrock = client or boto3.client(service_name='bedrock-runtime', region_name=config.region)

        logger.info(f'Initialized Bedrock Embed client with model: {self.model_id}')

    def _call_with_retry(self, data: dict) -> dict:
        """
        Make a Bedrock API call.

        Args:
            data: Request data dictionary

        Returns:
            Response dictionary from Bedrock API

        Raises:
            BedrockEmbedError: If all attempts fail
        """
        body = json.dumps(data)
        attempts = max(1, self.config.retry_attempts)

        for attempt in range(attempts):
            try:
                logger.debug(f'Bedrock Embed request attempt {attempt + 1}/{attempts}')

                response = self.bedrock.invoke_model(body=body,
                                                     modelId=self.model_id,
                                                     accept='application/json',
                                                     contentType='application/json')

                result = json.loads(response.get('body').read())
                logger.debug('Bedrock Embed request successful')
                return result

            except (ClientError, BotoCoreError) as e:
                logger.warning(f'Bedrock Embed attempt {attempt + 1}/{attempts} failed: {e}')

                if attempt < attempts - 1:
                    # Exponential backoff with jitter
                    delay = self.config.retry_delay * (2**attempt) + random.uniform(0, 1)
                    time.sleep(delay)
                else:
                    raise BedrockEmbedError(f'Bedrock Embed failed after {attempts} attempts: {e}')

            except Exception as e:
                logger.error(f'Unexpected error in Bedrock Embed: {e}')
                raise BedrockEmbedError(f'Unexpected Bedrock Embed error: {e}')

        raise BedrockEmbedError(f'Bedrock Embed failed after {attempts} attempts')

    def _request_body(self, text: str, input_type: str) -> dict:
        model_id = self.model_id.lower()
        if 'titan' in model_id:
            data = {'inputText': text}
            # Only Titan v2 accepts a requested output size; v1 is fixed at 1536.
            if 'v2' in model_id:
                data['dimensions'] = self.output_embedding_length
            return data

        if 'cohere' in model_id:
            if self.output_embedding_length != 1024:
                raise BedrockEmbedError(f'Cohere models only support 1024 dimensions, got {self.output_embedding_length}')
            return {'input_type': input_type, 'texts': [text]}

        raise BedrockEmbedError(f'Unsupported model for embedding: {self.model_id}')

    def _embed(self, text: str, input_type: str) -> List[float]:
        if not text or not text.strip():
            logger.warning(f'Empty text provided for {input_type} embedding')
            return embedding_zero_vector(self.output_embedding_length)

        try:
            response = self._call_with_retry(self._request_body(text, input_type))
            if 'embeddings' in response:
                embeddings = response['embeddings']
                embedding = embeddings[0] if embeddings else None
            else:
                embedding = response.get('embedding')

            if not embedding:
                raise BedrockEmbedError(f'No embedding returned by {self.model_id}')
            if len(embedding) != self.output_embedding_length:
                raise BedrockEmbedError(f'Expected embedding of length {self.output_embedding_length}, '
                                        f'got {len(embedding)} from {self.model_id}')
            return [float(v) for v in embedding]

        except BedrockEmbedError:
            raise
        except Exception as e:
            logger.error(f'Error generating {input_type} embedding: {e}')
            raise BedrockEmbedError(f'Embedding failed: {e}')

    def embed(self, text: str) -> List[float]:
        """
        Generate the embedding stored alongside a memory.

        Args:
            text: Text to embed

        Returns:
            List of embedding values

        Raises:
            BedrockEmbedError: If embedding generation fails
        """
        return self._embed(text, 'search_document')

    def embed_query(self, text: str) -> List[float]:
        """Generate the embedding of a search query."""
        return self._embed(text, 'search_query')

    def health_check(self) -> bool:
        """
        Perform a health check on the Bedrock embedding service.

        Returns:
            True if service is healthy, False otherwise
        """
        try:
            test_embedding = self.embed('test')
            return len(test_embedding) == self.output_embedding_length

        except Exception as e:
            logger.error(f'Bedrock Embed health check failed: {e}')
            return False

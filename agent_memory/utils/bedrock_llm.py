"""
Amazon Bedrock chat model used for evaluator selection.
"""

import random
import time
from typing import Any, Dict, Iterable, List

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .config import BedrockLLMConfig
from .errors import LanguageModelError
from .logging_config import get_logger

logger = get_logger(__name__)


class BedrockLLMError(LanguageModelError):
    """Custom exception for Bedrock LLM errors."""
    pass


class BedrockLLM:
    """Single-turn completions over the Bedrock Converse streaming API.

    A completion is one user message under a system prompt. The streamed
    text deltas are joined into the reply; token usage is only logged.
    """

    def __init__(self, config: BedrockLLMConfig, client=None):
        """
        Args:
            config: BedrockLLMConfig instance with model and sampling settings
            client: Pre-built bedrock-runtime client (created from config if None)
        """
        self.config = config
        self.model_id = config.model_id

        # Attempts are counted here, never inside botocore
        self.bedrock_runtime = client or boto3.client('bedrock-runtime',
                                                      region_name=config.region,
                                                      config=BotoConfig(connect_timeout=600,
                                                                        read_timeout=600,
                                                                        retries={'max_attempts': 0}))

        logger.info(f'Initialized Bedrock LLM client with model: {self.model_id}')

    def _converse(self, prompt: str, system_prompt: str) -> Iterable[Dict[str, Any]]:
        response = self.bedrock_runtime.converse_stream(modelId=self.model_id,
                                                        messages=[{
                                                            'role': 'user',
                                                            'content': [{
                                                                'text': prompt
                                                            }]
                                                        }],
                                                        system=[{
                                                            'text': system_prompt
                                                        }],
                                                        inferenceConfig={
                                                            'maxTokens': self.config.max_tokens,
                                                            'temperature': self.config.temperature,
                                                        })
        return response.get('stream') or []

    def _read_stream(self, stream: Iterable[Dict[str, Any]]) -> str:
        parts: List[str] = []
        for event in stream:
            if 'contentBlockDelta' in event:
                parts.append(event['contentBlockDelta']['delta'].get('text', ''))
            elif 'metadata' in event:
                usage = event['metadata'].get('usage', {})
                logger.debug(f'Bedrock LLM usage for {self.model_id}: {usage}')
        return ''.join(parts)

    def complete(self, prompt: str, system_prompt: str) -> str:
        """
        Generate the model's reply to a single prompt.

        Args:
            prompt: User message text
            system_prompt: System prompt framing the task

        Returns:
            The reply text

        Raises:
            BedrockLLMError: If every attempt fails
        """
        attempts = max(1, self.config.retry_attempts)

        for attempt in range(1, attempts + 1):
            try:
                text = self._read_stream(self._converse(prompt, system_prompt))
            except (ClientError, BotoCoreError) as e:
                logger.warning(f'Bedrock LLM attempt {attempt}/{attempts} failed: {e}')
                if attempt == attempts:
                    raise BedrockLLMError(f'Bedrock LLM failed after {attempts} attempts: {e}') from e
                # Exponential backoff with jitter
                time.sleep(self.config.retry_delay * (2**(attempt - 1)) + random.uniform(0, 1))
                continue
            except Exception as e:
                logger.error(f'Unexpected error in Bedrock LLM: {e}')
                raise BedrockLLMError(f'Unexpected Bedrock LLM error: {e}') from e

            logger.debug(f'Bedrock LLM reply of {len(text)} characters')
            return text

        raise BedrockLLMError(f'Bedrock LLM failed after {attempts} attempts')

    def health_check(self) -> bool:
        """True when the model answers a trivial prompt."""
        try:
            return bool(self.complete('Hi', "Respond with just 'OK'.").strip())
        except BedrockLLMError as e:
            logger.error(f'Bedrock LLM health check failed: {e}')
            return False

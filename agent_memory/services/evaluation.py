"""
Evaluator selection: asks the LLM which evaluators apply to the current turn.
"""

from typing import Dict, Iterable, Iterator, List, Optional

from ..models.core import ConversationContext, Evaluator
from ..models.protocols import LanguageModel
from ..utils.config import AppConfig, config
from ..utils.json_utils import extract_fenced_block, parse_json_like
from ..utils.logging_config import get_logger
from .evaluators.summarization import summarization
from .example_renderer import ExampleRenderer

logger = get_logger(__name__)

SYSTEM_PROMPT = 'You decide which evaluation functions an assistant should run after a conversation turn.'

EVALUATION_TEMPLATE = """TASK: Based on the conversation and conditions, determine which evaluation functions are appropriate to call.
Examples:
{evaluator_examples}

INSTRUCTIONS: You are helping me to decide which appropriate functions to call based on the conversation between {sender_name} and {agent_name}.

Recent conversation:
{recent_messages}

Evaluator Functions:
{evaluators}

Evaluator Conditions:
{evaluator_conditions}

TASK: Based on the most recent conversation, determine which evaluators functions are appropriate to call.
Include the name of evaluators that are relevant and should be called in the array
Available evaluator names to include are {evaluator_names}
Respond with a JSON array of evaluator names in a JSON block formatted for markdown with this structure:
```json
[
  'evaluatorName',
  'evaluatorName'
]
```

Your response must include the JSON block."""


class SelectionParseError(ValueError):
    """The LLM response did not contain a list of evaluator names."""
    pass


class EvaluatorRegistry:
    """Immutable, ordered set of evaluators keyed by name."""

    def __init__(self, evaluators: Iterable[Evaluator] = ()):
        by_name: Dict[str, Evaluator] = {}
        for evaluator in evaluators:
            if evaluator.name in by_name:
                raise ValueError(f'Duplicate evaluator name: {evaluator.name}')
            by_name[evaluator.name] = evaluator
        self._evaluators = tuple(by_name.values())
        self._by_name = by_name

    def __len__(self) -> int:
        return len(self._evaluators)

    def __iter__(self) -> Iterator[Evaluator]:
        return iter(self._evaluators)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def get(self, name: str) -> Optional[Evaluator]:
        return self._by_name.get(name)

    def names(self) -> List[str]:
        return [evaluator.name for evaluator in self._evaluators]


def default_registry() -> EvaluatorRegistry:
    return EvaluatorRegistry([summarization])


def format_evaluator_names(evaluators: Iterable[Evaluator]) -> str:
    return ',\n'.join(f"'{evaluator.name}'" for evaluator in evaluators)


def format_evaluators(evaluators: Iterable[Evaluator]) -> str:
    return ',\n'.join(f"'{evaluator.name}: {evaluator.description}'" for evaluator in evaluators)


def format_evaluator_conditions(evaluators: Iterable[Evaluator]) -> str:
    return ',\n'.join(f"'{evaluator.name}: {evaluator.condition}'" for evaluator in evaluators)


def format_evaluator_examples(evaluators: Iterable[Evaluator], renderer: ExampleRenderer) -> str:
    """Every example of every evaluator, each rendered with its own names."""
    return '\n\n'.join('\n\n'.join(rendered.format() for rendered in renderer.render_all(evaluator.examples))
                       for evaluator in evaluators)


def format_evaluator_example_conditions(evaluators: Iterable[Evaluator]) -> str:
    return '\n\n'.join('\n'.join(f'{evaluator.name} Example {index}: {evaluator.condition}'
                                 for index, _ in enumerate(evaluator.examples, start=1))
                       for evaluator in evaluators)


def format_evaluator_example_descriptions(evaluators: Iterable[Evaluator]) -> str:
    return '\n\n'.join('\n'.join(f'{evaluator.name} Example {index}: {evaluator.description}'
                                 for index, _ in enumerate(evaluator.examples, start=1))
                       for evaluator in evaluators)


def parse_evaluator_names(response: str) -> List[str]:
    """Read the list of names out of the fenced block of an LLM response.

    Raises:
        SelectionParseError: If there is no fenced block or it isn't a list
    """
    block = extract_fenced_block(response)
    if block is None:
        raise SelectionParseError('No fenced block in evaluator selection response')

    try:
        parsed = parse_json_like(block)
    except ValueError as e:
        raise SelectionParseError(f'Malformed evaluator list: {e}') from e

    if not isinstance(parsed, list):
        raise SelectionParseError(f'Expected a list of evaluator names, got {type(parsed).__name__}')

    names = []
    for item in parsed:
        if isinstance(item, str):
            names.append(item.strip())
        else:
            logger.warning(f'Ignoring non-string evaluator entry: {item!r}')
    return names


class EvaluatorSelector:
    """Chooses which evaluators run for a conversation turn.

    Holds no state between calls; the registry is read-only.
    """

    def __init__(self,
                 registry: EvaluatorRegistry,
                 llm: Optional[LanguageModel] = None,
                 renderer: Optional[ExampleRenderer] = None,
                 app_config: AppConfig = config):
        self.registry = registry
        self._llm = llm
        self._app_config = app_config
        self.renderer = renderer or ExampleRenderer(seed=app_config.evaluation.name_seed)

    @property
    def llm(self) -> LanguageModel:
        # Built on first use so an empty registry never needs AWS access
        if self._llm is None:
            from ..utils.bedrock_llm import BedrockLLM
            self._llm = BedrockLLM(self._app_config.bedrock_llm)
        return self._llm

    def compose_prompt(self, context: ConversationContext) -> str:
        evaluators = list(self.registry)
        return EVALUATION_TEMPLATE.format(evaluator_examples=format_evaluator_examples(evaluators, self.renderer),
                                          sender_name=context.sender_name,
                                          agent_name=context.agent_name,
                                          recent_messages=context.recent_messages,
                                          evaluators=format_evaluators(evaluators),
                                          evaluator_conditions=format_evaluator_conditions(evaluators),
                                          evaluator_names=format_evaluator_names(evaluators))

    def select(self, context: ConversationContext) -> List[str]:
        """
        Ask the LLM which registered evaluators apply to this turn.

        Args:
            context: Recent conversation plus sender and agent names

        Returns:
            Registered evaluator names in the order the model gave them,
            without duplicates. The order is not stable across calls.

        Raises:
            SelectionParseError: If the response has no parseable name list
        """
        if not len(self.registry):
            return []

        prompt = self.compose_prompt(context)
        response = self.llm.complete(prompt, SYSTEM_PROMPT)

        selected = []
        for name in parse_evaluator_names(response):
            if name not in self.registry:
                logger.warning(f'Dropping unknown evaluator selected by the model: {name}')
                continue
            if name not in selected:
                selected.append(name)

        logger.debug(f'Selected evaluators: {selected}')
        return selected

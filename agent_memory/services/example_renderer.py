"""
Rendering of evaluator examples with generated participant names.
"""

from typing import Iterable, List, Optional

from faker import Faker

from ..models.core import ActionExample, EvaluationExample, RenderedExample
from ..models.protocols import NameGenerator

# Examples may reference {{user1}} .. {{user5}}.
PLACEHOLDER_COUNT = 5


def placeholder(index: int) -> str:
    return f'{{{{user{index}}}}}'


class FakerNameGenerator:
    """Endless iterator of first names. Names may repeat."""

    def __init__(self, seed: Optional[int] = None, locale: str = 'en_US'):
        self.faker = Faker(locale)
        if seed is not None:
            self.faker.seed_instance(seed)

    def __iter__(self) -> 'FakerNameGenerator':
        return self

    def __next__(self) -> str:
        return self.faker.first_name()


class ExampleRenderer:
    """Substitutes {{userN}} placeholders with freshly drawn names.

    Every call to ``render`` draws a new set of names, so two examples never
    share names unless the generator repeats itself.
    """

    def __init__(self, name_generator: Optional[NameGenerator] = None, seed: Optional[int] = None):
        self.names = name_generator if name_generator is not None else FakerNameGenerator(seed)

    def draw_names(self) -> List[str]:
        return [next(self.names) for _ in range(PLACEHOLDER_COUNT)]

    @staticmethod
    def _substitute(text: str, names: List[str]) -> str:
        for index, name in enumerate(names, start=1):
            text = text.replace(placeholder(index), name)
        return text

    def _render_message(self, message: ActionExample, names: List[str]) -> str:
        line = self._substitute(f'{message.user}: {message.content.content}', names)
        if message.content.has_action:
            line += f' ({message.content.action})'
        return line

    def render(self, example: EvaluationExample) -> RenderedExample:
        names = self.draw_names()
        return RenderedExample(context=self._substitute(example.context, names),
                               messages=[self._render_message(message, names) for message in example.messages],
                               outcome=self._substitute(example.outcome, names))

    def render_all(self, examples: Iterable[EvaluationExample]) -> List[RenderedExample]:
        return [self.render(example) for example in examples]

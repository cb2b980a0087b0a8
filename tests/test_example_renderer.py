"""Unit tests for ExampleRenderer and the Faker name generator."""

import itertools

from agent_memory.models.core import ActionExample, EvaluationExample, MemoryContent
from agent_memory.services.example_renderer import (PLACEHOLDER_COUNT, ExampleRenderer, FakerNameGenerator,
                                                    placeholder)


def _example(**overrides) -> EvaluationExample:
    fields = dict(
        context='{{user1}} talks to {{user2}} about {{user3}}. {{user1}} is excited.',
        messages=(
            ActionExample(user='{{user1}}', content=MemoryContent(content='Have you met {{user3}}?')),
            ActionExample(user='{{user2}}', content=MemoryContent(content='Not yet, {{user1}}.', action='WAIT')),
        ),
        outcome='{{user2}} will meet {{user3}}.',
    )
    fields.update(overrides)
    return EvaluationExample(**fields)


class TestExampleRenderer:

    def test_placeholder(self) -> None:
        assert placeholder(1) == '{{user1}}'
        assert placeholder(5) == '{{user5}}'

    def test_replaces_every_occurrence_consistently(self, names) -> None:
        rendered = ExampleRenderer(name_generator=names).render(_example())

        assert rendered.context == 'Alice talks to Bob about Carol. Alice is excited.'
        assert rendered.messages == ['Alice: Have you met Carol?', 'Bob: Not yet, Alice. (WAIT)']
        assert rendered.outcome == 'Bob will meet Carol.'

    def test_draws_exactly_five_names_per_render(self) -> None:
        source = iter([f'name{i}' for i in range(20)])
        renderer = ExampleRenderer(name_generator=source)

        renderer.render(_example())
        renderer.render(_example())

        assert next(source) == f'name{2 * PLACEHOLDER_COUNT}'

    def test_each_render_uses_fresh_names(self) -> None:
        renderer = ExampleRenderer(name_generator=iter([f'n{i}' for i in range(10)]))

        first, second = renderer.render_all([_example(), _example()])

        assert first.outcome == 'n1 will meet n2.'
        assert second.outcome == 'n6 will meet n7.'

    def test_unused_placeholders_and_plain_text(self, names) -> None:
        example = _example(context='No participants here.', messages=(), outcome='{{user4}} and {{user6}}')

        rendered = ExampleRenderer(name_generator=names).render(example)

        assert rendered.context == 'No participants here.'
        assert rendered.messages == []
        # Only five placeholders are bound
        assert rendered.outcome == 'Dave and {{user6}}'

    def test_repeated_names_are_allowed(self) -> None:
        renderer = ExampleRenderer(name_generator=itertools.repeat('Sam'))

        rendered = renderer.render(_example())

        assert rendered.outcome == 'Sam will meet Sam.'

    def test_action_suffix_is_not_substituted(self, names) -> None:
        example = _example(messages=(ActionExample(user='{{user1}}',
                                                   content=MemoryContent(content='ok', action='{{user2}}')),))

        rendered = ExampleRenderer(name_generator=names).render(example)

        assert rendered.messages == ['Alice: ok ({{user2}})']

    def test_format(self, names) -> None:
        rendered = ExampleRenderer(name_generator=names).render(_example())

        assert rendered.format() == ('Context:\nAlice talks to Bob about Carol. Alice is excited.\n\n'
                                     'Messages:\nAlice: Have you met Carol?\nBob: Not yet, Alice. (WAIT)\n\n'
                                     'Outcome:\nBob will meet Carol.')


class TestFakerNameGenerator:

    def test_yields_names(self) -> None:
        generator = FakerNameGenerator(seed=7)
        drawn = list(itertools.islice(generator, 5))

        assert len(drawn) == 5
        assert all(isinstance(name, str) and name for name in drawn)

    def test_seed_is_reproducible(self) -> None:
        first = list(itertools.islice(FakerNameGenerator(seed=42), 5))
        second = list(itertools.islice(FakerNameGenerator(seed=42), 5))

        assert first == second

    def test_default_renderer_uses_faker(self) -> None:
        rendered = ExampleRenderer(seed=3).render(_example())

        assert '{{user1}}' not in rendered.context
        assert '{{user3}}' not in rendered.outcome

"""
Built-in evaluator that extracts lasting facts from a conversation.
"""

from ...models.core import ActionExample, EvaluationExample, Evaluator, MemoryContent

summarization = Evaluator(
    name='summarization',
    description='Extract factual claims about the participants and the world from the recent '
    'conversation and store them as memories.',
    condition='The conversation contains new information about a participant, a stated preference, '
    'a plan, or a fact that is worth remembering later.',
    examples=(
        EvaluationExample(
            context='{{user1}} and {{user2}} are catching up after a long week.',
            messages=(
                ActionExample(user='{{user1}}', content=MemoryContent(content='I finally moved to Lisbon last month!')),
                ActionExample(user='{{user2}}', content=MemoryContent(content='No way, how is the new place?')),
                ActionExample(user='{{user1}}',
                              content=MemoryContent(content='Small, but I can walk to the office now.')),
            ),
            outcome='{{user1}} moved to Lisbon last month and lives within walking distance of work. '
            'Call summarization.',
        ),
        EvaluationExample(
            context='{{user1}} is asking {{user2}} for help planning a dinner party.',
            messages=(
                ActionExample(user='{{user1}}',
                              content=MemoryContent(content='{{user3}} is vegetarian, so no meat this time.')),
                ActionExample(user='{{user2}}',
                              content=MemoryContent(content='Got it, I will look for recipes.', action='WAIT')),
            ),
            outcome='{{user3}} is vegetarian; {{user1}} is hosting a dinner party. Call summarization.',
        ),
        EvaluationExample(
            context='{{user1}} says hello to {{user2}}.',
            messages=(
                ActionExample(user='{{user1}}', content=MemoryContent(content='hey')),
                ActionExample(user='{{user2}}', content=MemoryContent(content='hi there!')),
            ),
            outcome='Greetings only, nothing worth remembering. Do not call summarization.',
        ),
    ),
)

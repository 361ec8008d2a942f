"""
OmniAsk - Offline Stream Simulator

Stands in for the stream proxy when no credential token or proxy URL is
available, so the session layer behaves the same in demo mode. Canned answers
are streamed as whitespace-preserving tokens after a short thinking pause.
"""

import asyncio
import random
import re
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional, Sequence, Tuple

from ..core.models import Provider


SleepFunc = Callable[[float], Awaitable[None]]

THINKING_DELAY: Tuple[float, float] = (0.3, 0.8)
TOKEN_DELAY: Tuple[float, float] = (0.015, 0.06)


CANNED_RESPONSES: Dict[Provider, Sequence[str]] = {
    Provider.PERPLEXITY: (
        "Here is what current sources say.\n\n"
        "1. **Main finding**: most references agree on the core answer.\n"
        "2. **Caveat**: a few recent reports add nuance worth checking.\n\n"
        "Sources: documentation, reference articles and community write-ups.",
        "I looked across several sources.\n\n"
        "• The common approach is well documented\n"
        "• Newer alternatives exist for specific cases\n\n"
        "Want me to dig into one of them?",
    ),
    Provider.GEMINI: (
        "Good question! Here's a quick breakdown:\n\n"
        "**Overview**\nThe idea is simple once the basics are in place.\n\n"
        "**Next steps**\nStart small, then expand as you learn what you need.",
        "Short answer: yes, this is possible.\n\n"
        "**Tip**: check the latest version first, it fixes most of the rough edges.",
    ),
    Provider.CHATGPT: (
        "Happy to help!\n\n"
        "**Short answer**: it depends on your requirements, but the simplest "
        "option usually works best.\n\n"
        "**Steps**:\n1. Define the goal\n2. Pick the smallest workable tool\n"
        "3. Iterate\n\nShould I go into more detail?",
        "Interesting question. The quick version: context matters.\n\n"
        "A common misconception is that one approach fits every case. "
        "Start from your constraints and work backwards.",
    ),
    Provider.CLAUDE: (
        "Thanks for the question. A careful answer depends on a few things:\n\n"
        "• your constraints\n• the trade-offs you can accept\n"
        "• whether this is a short or long term decision\n\n"
        "I'd prototype the simplest version first and adjust from real feedback.",
        "This one is more nuanced than it looks.\n\n"
        "The usual advice works in many cases, but edge cases are common. "
        "A hybrid approach is often the most reliable choice.",
    ),
}


def split_tokens(text: str) -> list:
    """Split text into words and the whitespace between them, keeping both."""
    return [token for token in re.split(r"(\s+)", text) if token]


class StreamSimulator:
    """
    Streams canned answers with human-looking timing.

    Args:
        responses: Canned texts per provider
        sleep: Awaitable delay function; tests pass a no-op
        rng: Random source used for both text choice and delays
    """

    def __init__(
        self,
        responses: Optional[Dict[Provider, Sequence[str]]] = None,
        *,
        sleep: SleepFunc = asyncio.sleep,
        rng: Optional[random.Random] = None,
        thinking_delay: Tuple[float, float] = THINKING_DELAY,
        token_delay: Tuple[float, float] = TOKEN_DELAY,
    ):
        self.responses = responses or CANNED_RESPONSES
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.thinking_delay = thinking_delay
        self.token_delay = token_delay

    def pick(self, provider: Provider) -> str:
        return self._rng.choice(list(self.responses[provider]))

    async def stream(self, provider: Provider) -> AsyncIterator[str]:
        text = self.pick(provider)

        await self._sleep(self._rng.uniform(*self.thinking_delay))

        for token in split_tokens(text):
            await self._sleep(self._rng.uniform(*self.token_delay))
            yield token

"""Character-based token estimation.

These are approximations of inference-service token counts, not tokenizer
output. Prose averages roughly four characters per token; source code is
denser.
"""

import math


TEXT_CHARS_PER_TOKEN = 4.0
CODE_CHARS_PER_TOKEN = 3.5


def estimate_tokens(text: str, chars_per_token: float = TEXT_CHARS_PER_TOKEN) -> int:
    """Return ``ceil(len(text) / chars_per_token)``."""
    if chars_per_token <= 0:
        raise ValueError("chars_per_token must be positive")
    return math.ceil(len(text) / chars_per_token)

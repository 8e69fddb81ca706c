"""
Color Generation

Random display colors for user color schemes and chat bubbles.
"""

import random
from typing import List

COLOR_SCHEME_SIZE = 10


def generate_random_colors(count: int) -> List[str]:
    """
    Generate a list of random hex colors.

    Args:
        count: Number of colors to generate

    Returns:
        list: Colors formatted as "#rrggbb"
    """
    return [f"#{random.randint(0, 0xFFFFFF):06x}" for _ in range(count)]


def generate_random_color() -> str:
    """Generate a single random hex color."""
    return generate_random_colors(1)[0]

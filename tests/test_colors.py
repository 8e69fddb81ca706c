"""
Tests for Color Generation
"""

import re

from src.chatroom.colors import (
    COLOR_SCHEME_SIZE,
    generate_random_color,
    generate_random_colors,
)

HEX_COLOR = re.compile(r"^#[0-9a-f]{6}$")


def test_generate_random_colors_count():
    """Test that the requested number of colors is generated."""
    colors = generate_random_colors(COLOR_SCHEME_SIZE)
    assert len(colors) == 10


def test_generate_random_colors_format():
    """Test that every color is a six digit hex color."""
    for color in generate_random_colors(50):
        assert HEX_COLOR.match(color), color


def test_generate_random_colors_zero():
    assert generate_random_colors(0) == []


def test_generate_random_color_single():
    assert HEX_COLOR.match(generate_random_color())

"""Tests for colour helpers."""
import pytest

from docmaker.services.color_utils import (
    adjust_lightness,
    contrast_ratio,
    hex_to_luminance,
    hex_to_rgb,
    validate_and_fix_colors,
)


def test_hex_to_rgb_forms():
    assert hex_to_rgb("#fff") == (255, 255, 255)
    assert hex_to_rgb("#102030") == (16, 32, 48)
    assert hex_to_rgb("#10203080") == (16, 32, 48)
    assert hex_to_rgb("not-a-colour") is None
    assert hex_to_rgb("") is None


def test_contrast_black_white():
    assert contrast_ratio("#000000", "#ffffff") == pytest.approx(21.0)
    assert contrast_ratio("#777777", "#777777") == pytest.approx(1.0)


def test_contrast_unparseable_is_one():
    assert contrast_ratio("red", "#ffffff") == 1.0


def test_luminance_of_invalid_colour():
    assert hex_to_luminance("??") == 0.2


def test_adjust_lightness_clamps():
    assert adjust_lightness("#000000", 0.1) == "#1a1a1a"
    assert adjust_lightness("#fafafa", 0.5) == "#ffffff"
    assert adjust_lightness("#101010", -1) == "#000000"
    assert adjust_lightness("bogus", 0.1) == "bogus"


def test_validate_and_fix_colors_lifts_low_contrast():
    fixed = validate_and_fix_colors({
        "background": "#0f0f1a",
        "text": "#222233",
        "accent": "#1a1a2a",
        "cardBg": "#0f0f1a",
        "muted": "#202030",
    })
    assert contrast_ratio(fixed["text"], "#0f0f1a") >= 4.5
    assert contrast_ratio(fixed["accent"], "#0f0f1a") >= 3
    assert contrast_ratio(fixed["muted"], "#0f0f1a") >= 3
    assert fixed["cardBg"] != "#0f0f1a"


def test_validate_and_fix_colors_keeps_good_palette():
    colors = {"background": "#000000", "text": "#ffffff", "accent": "#e94560"}
    assert validate_and_fix_colors(colors) == colors

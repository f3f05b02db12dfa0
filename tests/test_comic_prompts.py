"""Tests for comic prompt construction and narrative sanitization."""

import pytest
from hypothesis import given, settings, strategies as st

from app.services.comic_prompts import (
    PANEL_LAYOUTS,
    SANITIZE_PLACEHOLDER,
    build_comic_prompt,
    build_fallback_prompt,
    sanitize_narrative,
)


class TestSanitizeNarrative:
    def test_replaces_sensitive_words_and_inflections(self):
        text = "A killer rat fought the cockroaches while blood dripped."
        sanitized = sanitize_narrative(text)
        assert "killer" not in sanitized
        assert "rat " not in sanitized
        assert "cockroaches" not in sanitized
        assert "blood" not in sanitized
        assert sanitized.count(SANITIZE_PLACEHOLDER) == 4

    def test_leaves_unrelated_words_alone(self):
        text = "The staff would rather show their skill than die-cast models"
        sanitized = sanitize_narrative(text)
        assert "rather" in sanitized
        assert "skill" in sanitized

    def test_keeps_everyday_review_words(self):
        text = "Diners rated the soup poorly; its ratings dropped and the rates rose."
        assert sanitize_narrative(text) == text

    @pytest.mark.parametrize("word", ["rats", "killers", "stabbing", "died", "cockroaches", "poisoned"])
    def test_replaces_listed_inflections(self, word):
        assert sanitize_narrative(f"the {word} left") == f"the {SANITIZE_PLACEHOLDER} left"

    def test_is_case_insensitive(self):
        assert sanitize_narrative("DEAD silence") == f"{SANITIZE_PLACEHOLDER} silence"

    @pytest.mark.property
    @given(text=st.text(max_size=300))
    @settings(max_examples=200, deadline=None)
    def test_sanitizing_twice_equals_once(self, text):
        once = sanitize_narrative(text)
        assert sanitize_narrative(once) == once


class TestBuildComicPrompt:
    @pytest.mark.parametrize("panel_count", [1, 2, 3, 4])
    def test_states_exact_panel_count_and_layout(self, panel_count):
        prompt = build_comic_prompt("A chef sang to the soup.", panel_count)
        assert f"EXACTLY {panel_count}" in prompt
        assert PANEL_LAYOUTS[panel_count] in prompt
        assert "A chef sang to the soup." in prompt

    def test_forbids_embedded_text(self):
        prompt = build_comic_prompt("A chef sang to the soup.", 2)
        assert "Do NOT draw any text" in prompt

    def test_four_panels_use_story_arc(self):
        prompt = build_comic_prompt("A chef sang to the soup.", 4)
        for beat in ("Setup", "Twist", "Climax", "Aftermath"):
            assert beat in prompt

    @pytest.mark.parametrize("panel_count", [0, 5, -1])
    def test_rejects_out_of_range_panel_count(self, panel_count):
        with pytest.raises(ValueError):
            build_comic_prompt("story", panel_count)

    def test_rejects_empty_narrative(self):
        with pytest.raises(ValueError):
            build_comic_prompt("   ", 2)


class TestBuildFallbackPrompt:
    def test_contains_no_narrative_content(self):
        prompt = build_fallback_prompt(3)
        assert "restaurant" in prompt
        assert PANEL_LAYOUTS[3] in prompt

    def test_rejects_out_of_range_panel_count(self):
        with pytest.raises(ValueError):
            build_fallback_prompt(7)

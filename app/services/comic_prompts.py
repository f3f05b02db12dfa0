"""Prompt construction for comic image generation.

Image models draw illegible lettering, so every prompt asks for a silent comic
with room left for captions; the text is composited afterwards.
"""

from __future__ import annotations

import re

MIN_PANELS = 1
MAX_PANELS = 4
SANITIZE_PLACEHOLDER = "unusual"

# Word stems that tend to trip image content filters, each with the inflections
# it is matched with. Only listed forms are replaced, so "killer" and "rats"
# become the placeholder while "skill", "rated" and "ratings" are left alone.
POLICY_SENSITIVE_STEMS = {
    # violence
    "blood": ("y", "ied"),
    "kill": ("s", "ed", "er", "ers", "ing", "ings"),
    "murder": ("s", "ed", "er", "ers", "ing", "ous"),
    "fight": ("s", "er", "ers", "ing"),
    "attack": ("s", "ed", "er", "ers", "ing"),
    "stab": ("s", "bed", "bing", "bings"),
    # death
    "dead": ("ly",),
    "death": ("s", "ly"),
    "die": ("s", "d"),
    "dying": (),
    # weapons
    "gun": ("s",),
    "shoot": ("s", "er", "ers", "ing", "ings"),
    "weapon": ("s", "ry"),
    "knife": ("d",),
    "knives": (),
    # drugs
    "drug": ("s", "ged"),
    "cocaine": (),
    "heroin": (),
    "meth": (),
    # bodily
    "naked": (),
    "nude": ("s",),
    "sex": ("y", "ual"),
    "vomit": ("s", "ed", "ing"),
    "puke": ("s", "d"),
    "disgusting": ("ly",),
    # hate
    "hate": ("s", "d", "ful"),
    "racist": ("s",),
    "racial": ("ly",),
    # vermin
    "roach": ("es",),
    "cockroach": ("es",),
    "rat": ("s",),
    "mice": (),
    "vermin": (),
    # contamination
    "poison": ("s", "ed", "ing", "ous"),
    "toxic": (),
    "contaminated": (),
}


def _stem_pattern(stem: str, inflections: tuple[str, ...]) -> re.Pattern:
    suffix = f"(?:{'|'.join(inflections)})?" if inflections else ""
    return re.compile(rf"\b{re.escape(stem)}{suffix}\b", re.IGNORECASE)


_SANITIZE_PATTERNS = [_stem_pattern(stem, inflections) for stem, inflections in POLICY_SENSITIVE_STEMS.items()]

PANEL_LAYOUTS = {
    1: "Single full-frame scene (one wide moment filling the whole image)",
    2: "Two equal landscape panels stacked vertically (top, then bottom)",
    3: "Three panels with a cinematic left-to-right flow (beginning, middle, end)",
    4: "Four panels in a 2x2 grid read left-to-right, top-to-bottom (1-2 on top row, 3-4 on bottom row)",
}

PANEL_BEATS = {
    1: ["Capture the most surreal moment as a cinematic snapshot with supporting background details."],
    2: [
        "Set up the unusual situation or conflict.",
        "Deliver the punchline, reaction, or outcome with expressive characters.",
    ],
    3: [
        "Introduce the setting and main characters.",
        "Escalate the bizarre or unexpected element.",
        "Conclude with the payoff or lingering reaction.",
    ],
    4: [
        "Setup: establish the restaurant and characters in their normal world.",
        "Twist: introduce the strange or unsettling element.",
        "Climax: spotlight the most absurd detail.",
        "Aftermath: show the characters processing what happened.",
    ],
}


def _check_panel_count(panel_count: int) -> None:
    if not MIN_PANELS <= panel_count <= MAX_PANELS:
        raise ValueError(f"panel_count must be between {MIN_PANELS} and {MAX_PANELS}, got {panel_count}")


def sanitize_narrative(narrative: str) -> str:
    """Replace policy-sensitive whole words with a neutral placeholder."""
    sanitized = narrative
    for pattern in _SANITIZE_PATTERNS:
        sanitized = pattern.sub(SANITIZE_PLACEHOLDER, sanitized)
    return sanitized


def build_comic_prompt(narrative: str, panel_count: int) -> str:
    _check_panel_count(panel_count)
    if not narrative or not narrative.strip():
        raise ValueError("narrative cannot be empty")

    breakdown = "\n".join(f"{i}. {beat}" for i, beat in enumerate(PANEL_BEATS[panel_count], start=1))
    plural = "panel" if panel_count == 1 else "panels"
    return (
        f"Create a vibrant {panel_count}-panel comic strip in a clean, modern illustration style.\n"
        "\n"
        "REQUIREMENTS:\n"
        f"1. Create EXACTLY {panel_count} {plural}\n"
        "2. Do NOT draw any text, speech bubbles, word balloons, captions, labels, signs, or writing anywhere\n"
        "3. This is a SILENT COMIC - tell the story purely through visuals\n"
        "\n"
        "Story context:\n"
        f'"{narrative.strip()}"\n'
        "\n"
        f"Layout: {PANEL_LAYOUTS[panel_count]}\n"
        "- Consistent characters across panels with matching outfits and visual traits\n"
        f"- Clean panel gutters separating EXACTLY {panel_count} {plural}\n"
        "\n"
        "Panel breakdown:\n"
        f"{breakdown}\n"
        "\n"
        "Visual style:\n"
        "- Square image, bold outlines, vivid colors, exaggerated facial expressions\n"
        "- Modern cartoon illustration (NOT manga, NOT realistic)\n"
        "- Leave clear empty space near the bottom of each panel for caption overlay\n"
        "- Tell the story through actions, expressions, and body language only\n"
    )


def build_fallback_prompt(panel_count: int) -> str:
    """Generic prompt with no narrative content, used after a content-policy rejection."""
    _check_panel_count(panel_count)
    return (
        f"Create a vibrant {panel_count}-panel comic strip in a clean, modern cartoon illustration style.\n"
        "\n"
        "Scene: A cheerful, brightly lit restaurant. A happy customer sits at a table. A friendly waiter "
        "brings an unusually large or creative dish. The customer reacts with wide-eyed surprise and delight.\n"
        "\n"
        f"Layout: {PANEL_LAYOUTS[panel_count]}\n"
        "- Bold outlines, vivid colors, exaggerated happy facial expressions\n"
        "- Family-friendly modern cartoon illustration\n"
        "- Do not include any text, speech bubbles, labels, or writing anywhere in the image\n"
        "- Leave clear empty space in each panel for text to be added later\n"
    )

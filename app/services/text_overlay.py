"""Caption compositing on top of generated comic images."""

from __future__ import annotations

import io
import logging
import re

from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

from app.core.exceptions import UpstreamServiceError
from app.services.comic_prompts import MAX_PANELS, MIN_PANELS

logger = logging.getLogger(__name__)

CAPTION_STYLE = {
    "background_color": "#000000",
    "opacity": 0.6,
    "text_color": "#FFFFFF",
    "padding": 12,
    "margin": 10,
    "radius": 10,
    "font_divisor": 26,
    "min_font_size": 14,
    "max_height_ratio": 0.4,
}

_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")

Box = tuple[int, int, int, int]


def hex_to_rgba(hex_color: str, opacity: float = 1.0) -> tuple[int, int, int, int]:
    """Convert hex color to RGBA tuple with opacity."""
    hex_color = hex_color.lstrip("#")
    if len(hex_color) == 3:
        hex_color = "".join([c * 2 for c in hex_color])
    r, g, b = int(hex_color[0:2], 16), int(hex_color[2:4], 16), int(hex_color[4:6], 16)
    a = int(opacity * 255)
    return (r, g, b, a)


def _check_panel_count(panel_count: int) -> None:
    if not MIN_PANELS <= panel_count <= MAX_PANELS:
        raise ValueError(f"panel_count must be between {MIN_PANELS} and {MAX_PANELS}, got {panel_count}")


def split_captions(narrative: str, panel_count: int) -> list[str]:
    """One caption per panel, in reading order.

    Surplus sentences are merged into the last panel. When there are fewer
    sentences than panels the trailing panels get an empty caption.
    """
    _check_panel_count(panel_count)
    sentences = [s.strip() for s in _SENTENCE_END.split((narrative or "").strip()) if s.strip()]
    if len(sentences) > panel_count:
        head = sentences[: panel_count - 1]
        head.append(" ".join(sentences[panel_count - 1 :]))
        return head
    return sentences + [""] * (panel_count - len(sentences))


def panel_regions(width: int, height: int, panel_count: int) -> list[Box]:
    """Pixel boxes ``(left, top, right, bottom)`` for each panel in reading order."""
    _check_panel_count(panel_count)
    if width <= 0 or height <= 0:
        raise ValueError("image dimensions must be positive")

    if panel_count == 1:
        return [(0, 0, width, height)]
    if panel_count == 2:
        mid = height // 2
        return [(0, 0, width, mid), (0, mid, width, height)]
    if panel_count == 3:
        third = width // 3
        return [(0, 0, third, height), (third, 0, 2 * third, height), (2 * third, 0, width, height)]
    mid_x, mid_y = width // 2, height // 2
    return [
        (0, 0, mid_x, mid_y),
        (mid_x, 0, width, mid_y),
        (0, mid_y, mid_x, height),
        (mid_x, mid_y, width, height),
    ]


def _load_font(size: int, font_path: str | None) -> ImageFont.ImageFont | ImageFont.FreeTypeFont:
    if font_path:
        try:
            return ImageFont.truetype(font_path, size)
        except OSError as exc:
            logger.warning("Failed to load font %s: %s", font_path, exc)
    return ImageFont.load_default(size=size)


def wrap_text(draw: ImageDraw.ImageDraw, text: str, font, max_width: int) -> list[str]:
    words = text.split()
    lines: list[str] = []
    current_line: list[str] = []

    for word in words:
        test_line = " ".join(current_line + [word])
        bbox = draw.textbbox((0, 0), test_line, font=font)
        if bbox[2] - bbox[0] <= max_width:
            current_line.append(word)
        else:
            if current_line:
                lines.append(" ".join(current_line))
            current_line = [word]

    if current_line:
        lines.append(" ".join(current_line))
    return lines


def _draw_caption(draw: ImageDraw.ImageDraw, caption: str, box: Box, font_path: str | None) -> None:
    left, top, right, bottom = box
    panel_w, panel_h = right - left, bottom - top
    padding, margin = CAPTION_STYLE["padding"], CAPTION_STYLE["margin"]
    if panel_w <= 2 * margin or panel_h <= 2 * margin:
        logger.warning("panel too small for a caption size=%sx%s", panel_w, panel_h)
        return

    font_size = max(CAPTION_STYLE["min_font_size"], panel_w // CAPTION_STYLE["font_divisor"])
    font = _load_font(font_size, font_path)
    max_text_width = max(1, panel_w - 2 * (padding + margin))
    lines = wrap_text(draw, caption, font, max_text_width)

    line_height = int(font_size * 1.25)
    max_lines = max(1, int(panel_h * CAPTION_STYLE["max_height_ratio"]) // line_height)
    if len(lines) > max_lines:
        lines = lines[:max_lines]
        lines[-1] = lines[-1].rstrip(".,;: ") + "..."

    box_h = line_height * len(lines) + 2 * padding
    box_top = bottom - margin - box_h
    draw.rounded_rectangle(
        [left + margin, box_top, right - margin, bottom - margin],
        radius=CAPTION_STYLE["radius"],
        fill=hex_to_rgba(CAPTION_STYLE["background_color"], CAPTION_STYLE["opacity"]),
    )

    text_rgba = hex_to_rgba(CAPTION_STYLE["text_color"], 1.0)
    for i, line in enumerate(lines):
        line_w = draw.textbbox((0, 0), line, font=font)[2]
        text_x = left + max(margin + padding, (panel_w - line_w) // 2)
        draw.text((text_x, box_top + padding + i * line_height), line, fill=text_rgba, font=font)


def add_text_overlay(
    image_bytes: bytes,
    narrative: str,
    panel_count: int,
    font_path: str | None = None,
) -> bytes:
    """Burn per-panel captions into the image and return PNG bytes."""
    captions = split_captions(narrative, panel_count)
    try:
        img = Image.open(io.BytesIO(image_bytes))
        img.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise UpstreamServiceError(f"Generated image could not be decoded: {exc}", provider="openai") from exc

    if img.mode != "RGBA":
        img = img.convert("RGBA")

    caption_layer = Image.new("RGBA", img.size, (255, 255, 255, 0))
    caption_draw = ImageDraw.Draw(caption_layer)
    for caption, box in zip(captions, panel_regions(img.width, img.height, panel_count)):
        if caption:
            _draw_caption(caption_draw, caption, box, font_path)

    composite = Image.alpha_composite(img, caption_layer)
    buffer = io.BytesIO()
    composite.convert("RGB").save(buffer, "PNG")
    logger.info(
        "captions composited panels=%s captions=%s size=%sx%s",
        panel_count,
        sum(1 for c in captions if c),
        img.width,
        img.height,
    )
    return buffer.getvalue()

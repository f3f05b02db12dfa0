"""Strangeness analysis of review text through the Gemini text model."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Protocol

from app.core.exceptions import InvalidInputError, UpstreamServiceError
from app.core.retry import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_ANALYSIS_CAP = 5
DEFAULT_PANEL_COUNT = 4

SYSTEM_PROMPT = (
    "You are an expert at analyzing restaurant reviews for unusual, strange, or surreal elements. "
    "You return JSON responses only."
)

ANALYSIS_PROMPT = """Analyze these restaurant reviews for strangeness. Rate the overall strangeness on a scale of 0-100:
- 0-20: Completely normal, typical restaurant experience
- 21-40: Slightly unusual details or phrasing
- 41-60: Moderately strange situations or observations
- 61-80: Very weird, surreal, or unexpected experiences
- 81-100: Extremely bizarre, dreamlike, or nonsensical content

Also write a concise narrative paragraph (1-3 sentences) summarizing the strangest aspects for comic generation.

Determine the optimal number of panels (1-4) for the comic based on narrative complexity:
- 1 panel: Single moment, simple observation, or quick joke
- 2 panels: Before/after, cause/effect, or simple contrast
- 3 panels: Setup, escalation, punchline
- 4 panels: Full story arc with setup, development, climax, resolution

Reviews:
{reviews}

Return JSON in this exact format:
{{
  "strangenessScore": 75,
  "panelCount": 3,
  "narrative": "A concise summary of the strangest elements suitable for a comic strip."
}}"""


class TextGenerator(Protocol):
    def generate_text(
        self,
        prompt: str,
        *,
        system_instruction: str | None = None,
        temperature: float | None = None,
        max_output_tokens: int | None = None,
        json_response: bool = False,
    ) -> str: ...


@dataclass(frozen=True)
class NarrativeAnalysis:
    score: float
    panel_count: int
    narrative: str


def _strip_markdown_fences(text: str) -> str:
    """Remove markdown code fences from LLM output."""
    match = re.search(r"```(?:json)?\s*\n?(.*?)\n?```", text, re.DOTALL | re.IGNORECASE)
    if match:
        return match.group(1).strip()
    return text


def _extract_json_object(text: str) -> str | None:
    """Extract the outermost JSON object using bracket matching."""
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escape_next = False

    for i, char in enumerate(text[start:], start):
        if escape_next:
            escape_next = False
            continue
        if char == "\\":
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]

    return None


def parse_analysis_payload(raw: str) -> dict:
    """Parse the model reply into a dict, tolerating fences and chatter around the object."""
    if not raw or not raw.strip():
        raise UpstreamServiceError("Narrative analysis returned an empty reply", provider="gemini")

    candidates = [raw.strip(), _strip_markdown_fences(raw.strip())]
    extracted = _extract_json_object(candidates[-1])
    if extracted:
        candidates.append(re.sub(r",\s*([}\]])", r"\1", extracted))

    for candidate in candidates:
        try:
            payload = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(payload, dict):
            return payload

    logger.warning("narrative analysis reply was not JSON preview=%r", raw[:200])
    raise UpstreamServiceError("Narrative analysis returned malformed JSON", provider="gemini")


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def coerce_analysis(payload: dict) -> NarrativeAnalysis:
    try:
        score = float(payload.get("strangenessScore", 0))
    except (TypeError, ValueError) as exc:
        raise UpstreamServiceError("Narrative analysis returned a non-numeric score", provider="gemini") from exc

    raw_panels = payload.get("panelCount")
    try:
        panel_count = int(raw_panels) if raw_panels is not None else DEFAULT_PANEL_COUNT
    except (TypeError, ValueError):
        panel_count = DEFAULT_PANEL_COUNT

    narrative = payload.get("narrative")
    if not isinstance(narrative, str) or not narrative.strip():
        raise UpstreamServiceError("Narrative analysis returned no narrative", provider="gemini")

    return NarrativeAnalysis(
        score=_clamp(score, 0.0, 100.0),
        panel_count=int(_clamp(panel_count, 1, 4)),
        narrative=narrative.strip(),
    )


def build_analysis_prompt(reviews: list[str]) -> str:
    body = "\n\n".join(f"Review {i}: {text}" for i, text in enumerate(reviews, start=1))
    return ANALYSIS_PROMPT.format(reviews=body)


class NarrativeAnalyzer:
    def __init__(
        self,
        client: TextGenerator,
        retry_policy: RetryPolicy | None = None,
        analysis_cap: int = DEFAULT_ANALYSIS_CAP,
    ):
        if analysis_cap < 1:
            raise ValueError("analysis_cap must be at least 1")
        self.client = client
        self.retry_policy = retry_policy or RetryPolicy()
        self.analysis_cap = analysis_cap

    def analyze(self, reviews: list[str]) -> NarrativeAnalysis:
        """Score the first ``analysis_cap`` non-blank reviews and draft a narrative.

        Transient provider errors are retried by the policy; when retries run
        out the last one propagates, which is itself an ``UpstreamServiceError``.
        """
        texts = [text for text in reviews if text and text.strip()][: self.analysis_cap]
        if not texts:
            raise InvalidInputError("No review text to analyze")

        prompt = build_analysis_prompt(texts)

        def _call() -> str:
            return self.client.generate_text(
                prompt,
                system_instruction=SYSTEM_PROMPT,
                temperature=0.3,
                max_output_tokens=400,
                json_response=True,
            )

        raw = self.retry_policy.run(_call, operation="narrative.analyze")
        analysis = coerce_analysis(parse_analysis_payload(raw))
        logger.info(
            "narrative analyzed reviews=%s score=%.1f panels=%s",
            len(texts),
            analysis.score,
            analysis.panel_count,
        )
        return analysis

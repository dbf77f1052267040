"""Prompt templates for the themed portrait topics."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

CAPTION_SLOT = "{{caption}}"
ANIMAL_SLOT = "{{animal}}"
DEFAULT_TOPIC = "celebration"
DEFAULT_ANIMAL = "pet"


@dataclass(frozen=True)
class PromptTemplate:
    name: str
    edit: str
    text_only: str
    description: str

    def template_for(self, has_image: bool) -> str:
        return self.edit if has_image else self.text_only


PROMPTS: Dict[str, PromptTemplate] = {
    "celebration": PromptTemplate(
        name="celebration",
        edit=(
            "A joyful, colorful celebration scene centered around the uploaded animal. "
            "Add confetti, warm sunlight, and a festive banner that reads '{{caption}}'. "
            "Photorealistic, bright, high detail."
        ),
        text_only=(
            "A joyful, colorful celebration scene featuring a {{animal}} as the star. "
            "Add confetti, warm sunlight, and a festive banner that reads '{{caption}}'. "
            "Photorealistic, vibrant, high detail."
        ),
        description="Party scene with the caption on a banner.",
    ),
    "memorial": PromptTemplate(
        name="memorial",
        edit=(
            "A respectful, soft-toned portrait of the uploaded animal with gentle light and a "
            "subtle floral arrangement. Soft vignette, cinematic film look, calm and reverent."
        ),
        text_only=(
            "A respectful, soft-toned portrait of a {{animal}} with gentle golden light and a "
            "subtle arrangement of flowers. Soft vignette, cinematic film look, calm and reverent."
        ),
        description="Quiet tribute portrait.",
    ),
    "retirement": PromptTemplate(
        name="retirement",
        edit=(
            "A playful retirement-themed scene with the uploaded animal wearing a party hat and "
            "holding a small cake, warm tones, whimsical photorealism."
        ),
        text_only=(
            "A whimsical retirement-themed scene with a {{animal}} wearing a party hat and "
            "holding a small cake, warm tones, playful photorealism."
        ),
        description="Party hat and cake.",
    ),
    "fantasy": PromptTemplate(
        name="fantasy",
        edit=(
            "Transform the uploaded animal into a fantasy creature with glowing wings and soft "
            "magical light. Painterly, highly detailed."
        ),
        text_only=(
            "A {{animal}} transformed into a majestic fantasy creature with glowing wings and "
            "ethereal soft light. Painterly, highly detailed, magical."
        ),
        description="Winged fantasy creature.",
    ),
    # The caller's keywords are the whole prompt.
    "keywords": PromptTemplate(
        name="keywords",
        edit=CAPTION_SLOT,
        text_only=CAPTION_SLOT,
        description="Free-form keywords with no theme text.",
    ),
}

TOPICS = tuple(PROMPTS)


def normalize_topic(topic: Optional[str]) -> str:
    """Map unknown or missing topics onto the default theme."""

    if topic is not None and topic in TOPICS:
        return topic
    return DEFAULT_TOPIC


def _apply_caption(template: str, caption: str) -> str:
    if CAPTION_SLOT in template:
        return template.replace(CAPTION_SLOT, caption, 1)
    if caption:
        return f"{template} {caption}"
    return template


def compose(
    topic: Optional[str],
    caption: str = "",
    has_image: bool = True,
    classifier_hint: Optional[str] = None,
) -> str:
    """Build the final prompt for a topic and caption.

    Image-edit templates refer to "the uploaded animal"; text-only templates
    name the subject from ``classifier_hint``, falling back to ``"pet"``.
    """

    template = PROMPTS[normalize_topic(topic)].template_for(has_image)
    if not has_image:
        template = template.replace(ANIMAL_SLOT, classifier_hint or DEFAULT_ANIMAL, 1)
    return _apply_caption(template, caption or "")


__all__ = ["PROMPTS", "TOPICS", "PromptTemplate", "compose", "normalize_topic"]

"""Value objects passed between pipeline stages."""
from __future__ import annotations

import base64
import enum
import re
from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Union

CLASSIFIER_LABEL_MAX_LENGTH = 80
_CLASSIFIER_LABEL_DISALLOWED = re.compile(r"[^A-Za-z0-9 _-]")

# Caption terms rejected outright; the moderation provider catches the rest.
BLOCKED_CAPTION_TERMS: FrozenSet[str] = frozenset(
    {
        "porn", "porno", "pornography", "xxx", "nude", "nudes", "naked", "nudity",
        "nsfw", "sex", "sexual", "sexy", "erotic", "erotica", "fetish",
        "fuck", "fucker", "fucking", "fucked", "fucks",
        "shit", "bullshit",
        "cock", "dick", "penis", "vagina", "pussy", "cunt", "ass", "asshole",
        "boob", "boobs", "breast", "breasts", "nipple", "nipples",
        "rape", "molest", "pedophile", "pedo", "loli",
        "bitch", "whore", "slut", "bastard",
    }
)
_WORD = re.compile(r"[a-z0-9]+")


class Quality(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class DispatchMode(str, enum.Enum):
    EDIT = "edit"
    TEXT_ONLY = "text_only"


def sanitize_classifier_label(raw: Optional[str]) -> Optional[str]:
    """Strip a free-form classifier label down to safe characters."""

    if not raw:
        return None
    cleaned = _CLASSIFIER_LABEL_DISALLOWED.sub("", raw).strip()[:CLASSIFIER_LABEL_MAX_LENGTH]
    return cleaned or None


def find_blocked_term(text: str) -> Optional[str]:
    """Return the first blocked word appearing in ``text``, if any.

    Matching is per whole word so ``"class"`` or ``"grass"`` do not trip the
    ``"ass"`` entry.
    """

    for word in _WORD.findall(text.lower()):
        if word in BLOCKED_CAPTION_TERMS:
            return word
    return None


@dataclass(frozen=True)
class GenerationRequest:
    """Validated inputs for a single generation call."""

    topic: str
    caption: str
    quality: Quality
    size: str
    text_only: bool = False
    image: Optional[bytes] = field(default=None, repr=False)
    image_mime_type: str = "image/png"
    classifier_hint: Optional[str] = None

    @property
    def has_image(self) -> bool:
        return self.image is not None

    @property
    def uses_edit(self) -> bool:
        return self.has_image and not self.text_only


@dataclass(frozen=True)
class ModerationVerdict:
    flagged: bool
    categories: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class ImageUrl:
    """Provider answered with a hosted image."""

    url: str


@dataclass(frozen=True)
class InlineImage:
    """Provider answered with the encoded image inline."""

    data: bytes = field(repr=False)
    mime_type: str = "image/png"

    @classmethod
    def from_base64(cls, payload: str, mime_type: str = "image/png") -> "InlineImage":
        return cls(data=base64.b64decode(payload, validate=True), mime_type=mime_type)

    def data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


@dataclass(frozen=True)
class ProviderFailure:
    """Non-success status, transport failure or unrecognised payload."""

    status_code: Optional[int]
    body: str = field(default="", repr=False)
    reason: str = ""


ProviderResponse = Union[ImageUrl, InlineImage, ProviderFailure]

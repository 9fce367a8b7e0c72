"""
Inline media sentinels

The widget embeds uploaded photos in turn text as ``[IMAGE_URL: <url>]`` and
replies carry renders as ``[RENDER_URL: <url>]``. This module is the only
place that knows that format.
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional


class MediaKind(str, Enum):
    IMAGE = "IMAGE_URL"
    RENDER = "RENDER_URL"


# Uploaded file names may contain spaces; the URL runs up to the closing bracket
_SENTINEL_PATTERN = re.compile(r"\[(IMAGE_URL|RENDER_URL):\s*([^\]\r\n]+?)\s*\]")


@dataclass(frozen=True)
class DecodedPart:
    """Result of decoding one text part"""
    url: Optional[str]
    kind: Optional[MediaKind]
    text: str

    @property
    def has_media(self) -> bool:
        return self.url is not None


class MediaSentinelCodec:
    """Encodes media URLs into sentinels and extracts them back out of text"""

    @staticmethod
    def encode(url: str, kind: MediaKind = MediaKind.IMAGE) -> str:
        if not url or url != url.strip() or "]" in url or "\n" in url or "\r" in url:
            raise ValueError(f"URL cannot be embedded in a sentinel: {url!r}")
        return f"[{kind.value}: {url}]"

    @staticmethod
    def decode(text: Optional[str], kinds: Optional[List[MediaKind]] = None) -> DecodedPart:
        """
        Extract the first sentinel from a text part.

        Only the first match is returned; any later sentinels stay in the
        remaining text. Text without a sentinel decodes to "no media".

        Args:
            text: Turn part text (may be None or empty)
            kinds: Restrict matching to these sentinel kinds (default: all)
        """
        if not text:
            return DecodedPart(url=None, kind=None, text="")

        allowed = {k.value for k in kinds} if kinds else None
        for match in _SENTINEL_PATTERN.finditer(text):
            if allowed is not None and match.group(1) not in allowed:
                continue
            remaining = (text[:match.start()] + text[match.end():]).strip()
            remaining = re.sub(r"[ \t]{2,}", " ", remaining)
            return DecodedPart(url=match.group(2), kind=MediaKind(match.group(1)), text=remaining)

        return DecodedPart(url=None, kind=None, text=text)

    @staticmethod
    def decode_all(text: Optional[str]) -> List[DecodedPart]:
        """Every sentinel in the text, in order (the text field holds the fully stripped text)."""
        if not text:
            return []
        stripped = _SENTINEL_PATTERN.sub("", text).strip()
        return [
            DecodedPart(url=m.group(2), kind=MediaKind(m.group(1)), text=stripped)
            for m in _SENTINEL_PATTERN.finditer(text)
        ]

    @classmethod
    def append_render(cls, reply: str, render_url: str) -> str:
        """Reply text with a render sentinel appended on its own paragraph"""
        return f"{reply.rstrip()}\n\n{cls.encode(render_url, MediaKind.RENDER)}"

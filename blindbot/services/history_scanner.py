"""
Source-image lookup across a replayed conversation.

Lets a customer upload a room photo in one turn and ask for a style in a
later turn without uploading it again.
"""
from typing import Optional, Sequence

from blindbot.schemas.chat import ConversationTurn
from blindbot.services.media_sentinel import MediaKind, MediaSentinelCodec


def find_turn_image(turn: ConversationTurn) -> Optional[str]:
    """First customer-image sentinel in a single turn"""
    for part in turn.parts:
        decoded = MediaSentinelCodec.decode(part.text, kinds=[MediaKind.IMAGE])
        if decoded.has_media:
            return decoded.url
    return None


def find_source_image(turns: Sequence[ConversationTurn], current_index: int) -> Optional[str]:
    """
    Locate the most recent customer photo for the turn at current_index.

    The current turn is checked first. Otherwise earlier user turns are
    scanned newest-first; model turns are ignored.

    Returns:
        Image URL, or None when no photo exists anywhere
    """
    if not turns or not 0 <= current_index < len(turns):
        return None

    url = find_turn_image(turns[current_index])
    if url:
        return url

    for turn in reversed(turns[:current_index]):
        if turn.role != "user":
            continue
        url = find_turn_image(turn)
        if url:
            return url
    return None

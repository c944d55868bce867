"""
In-memory store of shared memes.

Snapshots only live as long as the process; there is no on-disk format.
"""

import logging

from mememe.schemas.meme import MemeSnapshot

logger = logging.getLogger(__name__)


class MemeStore:
    """Keeps snapshots of completed shares, oldest first."""

    def __init__(self):
        self._memes: list[MemeSnapshot] = []

    def persist(self, snapshot: MemeSnapshot) -> None:
        self._memes.append(snapshot)
        logger.info(
            f"Persisted meme #{len(self._memes)}: "
            f"top='{snapshot.top_text[:30]}', bottom='{snapshot.bottom_text[:30]}'"
        )

    def list(self) -> list[MemeSnapshot]:
        return list(self._memes)

    def clear(self) -> None:
        self._memes.clear()

    def __len__(self) -> int:
        return len(self._memes)


_meme_store = None


def get_meme_store() -> MemeStore:
    global _meme_store
    if _meme_store is None:
        _meme_store = MemeStore()
    return _meme_store

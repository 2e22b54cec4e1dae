"""
wordplay.engine.words — Word Lists & Deterministic Word Selection
==================================================================

:class:`WordList` is both the dictionary (``is_valid_word``) and the random
word source (``generate_random_words``) consumed by the game and arena
services.

Word selection is deterministic so no secret word has to be stored before a
game is created:

* **Daily** — the answer list is shuffled with the seed
  ``"<identity_provider>/<SHUFFLE_SECRET>"`` and indexed by the number of
  days since :data:`~wordplay.constants.DAILY_EPOCH`.  Every player on the
  same provider gets the same word on the same day.
* **Practice** — an index into the same shuffled list, drawn from a RNG
  seeded by ``"<SHUFFLE_SECRET>/<game_key>"``.
"""

from __future__ import annotations

import logging
import random
from importlib import resources
from pathlib import Path

from wordplay.constants import WORD_LENGTH, days_since_epoch

logger = logging.getLogger(__name__)


def _read_words(text: str) -> list[str]:
    words = []
    for line in text.splitlines():
        w = line.strip().lower()
        if w and not w.startswith("#"):
            words.append(w)
    return words


def _bundled(name: str) -> list[str]:
    return _read_words(
        resources.files("wordplay").joinpath("data", name).read_text(encoding="utf-8")
    )


class WordList:
    """Answer list (ordered) plus the wider set of acceptable guesses."""

    def __init__(self, answers: list[str], allowed: list[str] | None = None) -> None:
        bad = [w for w in answers if len(w) != WORD_LENGTH or not w.isalpha()]
        if bad:
            raise ValueError(f"Answer list contains invalid words: {bad[:5]}")
        if not answers:
            raise ValueError("Answer list is empty")
        self.answers: list[str] = list(answers)
        self._allowed: frozenset[str] = frozenset(answers) | frozenset(allowed or ())
        self._shuffled: dict[str, list[str]] = {}

    # -- construction -----------------------------------------------------

    @classmethod
    def bundled(cls) -> WordList:
        """Load the word lists shipped in ``wordplay/data``."""
        return cls(_bundled("answers.txt"), _bundled("allowed.txt"))

    @classmethod
    def from_files(
        cls, answers_path: str | Path, allowed_path: str | Path | None = None
    ) -> WordList:
        answers = _read_words(Path(answers_path).read_text(encoding="utf-8"))
        allowed = (
            _read_words(Path(allowed_path).read_text(encoding="utf-8"))
            if allowed_path else []
        )
        logger.info(
            "Loaded %d answers and %d extra guess words from %s",
            len(answers), len(allowed), answers_path,
        )
        return cls(answers, allowed)

    # -- dictionary port --------------------------------------------------

    def is_valid_word(self, word: str) -> bool:
        return word.lower() in self._allowed

    # -- random word port -------------------------------------------------

    def generate_random_words(self, n: int, rng: random.Random | None = None) -> list[str]:
        """Return *n* answer words, distinct while the list allows it."""
        rng = rng or random.Random()
        if n <= len(self.answers):
            return rng.sample(self.answers, n)
        return [rng.choice(self.answers) for _ in range(n)]

    # -- deterministic selection ------------------------------------------

    def _shuffled_for(self, identity_provider: str, secret: str) -> list[str]:
        seed = f"{identity_provider}/{secret}"
        shuffled = self._shuffled.get(seed)
        if shuffled is None:
            shuffled = list(self.answers)
            random.Random(seed).shuffle(shuffled)
            self._shuffled[seed] = shuffled
        return shuffled

    def daily_word(self, game_key: str, identity_provider: str, secret: str) -> str:
        shuffled = self._shuffled_for(identity_provider, secret)
        return shuffled[days_since_epoch(game_key) % len(shuffled)]

    def practice_word(self, game_key: str, identity_provider: str, secret: str) -> str:
        shuffled = self._shuffled_for(identity_provider, secret)
        return shuffled[random.Random(f"{secret}/{game_key}").randrange(len(shuffled))]

    def __len__(self) -> int:
        return len(self.answers)

"""
wordplay.engine.evaluator — Guess Evaluation & Validation
===========================================================

Pure functions, no I/O.  The dictionary is injected as any object with an
``is_valid_word(word) -> bool`` method (see :class:`wordplay.engine.words.WordList`).

Coloring is the duplicate-letter-safe two-pass algorithm:

1. Count the letters of the secret word.
2. Exact matches are CORRECT and consume one count each.
3. Every other position is WRONG_POSITION while its letter still has a
   count left (consuming it), else INCORRECT.

So ``evaluate_guess("caper", "apple")`` marks one ``p`` and the ``a`` as
WRONG_POSITION, never both ``p``\\ s.
"""

from __future__ import annotations

import enum
import re
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol

from wordplay.constants import WORD_LENGTH

_WORD_RE = re.compile(rf"^[a-z]{{{WORD_LENGTH}}}$")


class Dictionary(Protocol):
    def is_valid_word(self, word: str) -> bool: ...


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------
class GuessStatus(enum.StrEnum):
    CORRECT = "CORRECT"
    WRONG_POSITION = "WRONG_POSITION"
    INCORRECT = "INCORRECT"


class ValidationResult(enum.StrEnum):
    """Ordered validation outcomes; the first failing check wins."""
    VALID = "VALID"
    INVALID_EMPTY = "INVALID_EMPTY"
    INVALID_SIZE = "INVALID_SIZE"
    INVALID_FORMAT = "INVALID_FORMAT"
    INVALID_WORD = "INVALID_WORD"
    INVALID_ALREADY_GUESSED = "INVALID_ALREADY_GUESSED"
    INVALID_HARD_MODE = "INVALID_HARD_MODE"


VALIDATION_MESSAGES: dict[ValidationResult, str] = {
    ValidationResult.VALID: "",
    ValidationResult.INVALID_EMPTY: "Your guess is empty.",
    ValidationResult.INVALID_SIZE: f"Your guess must be {WORD_LENGTH} letters.",
    ValidationResult.INVALID_FORMAT: "Your guess may only contain letters.",
    ValidationResult.INVALID_WORD: "Not in word list.",
    ValidationResult.INVALID_ALREADY_GUESSED: "You already guessed that word.",
    ValidationResult.INVALID_HARD_MODE: "Hard mode: use every revealed hint.",
}


@dataclass(frozen=True, slots=True)
class GuessCharacter:
    character: str
    status: GuessStatus


# ---------------------------------------------------------------------------
# Coloring
# ---------------------------------------------------------------------------
def normalize_guess(text: str | None) -> str:
    return (text or "").strip().lower()


def evaluate_guess(word: str, guess: str) -> list[GuessCharacter]:
    """Color *guess* against the secret *word* (both lower-case, same length)."""
    if len(word) != len(guess):
        raise ValueError(f"word and guess differ in length: {word!r} / {guess!r}")

    remaining = Counter(word)
    statuses: list[GuessStatus | None] = [None] * len(guess)

    for i, (g, w) in enumerate(zip(guess, word)):
        if g == w:
            statuses[i] = GuessStatus.CORRECT
            remaining[g] -= 1

    for i, g in enumerate(guess):
        if statuses[i] is not None:
            continue
        if remaining[g] > 0:
            statuses[i] = GuessStatus.WRONG_POSITION
            remaining[g] -= 1
        else:
            statuses[i] = GuessStatus.INCORRECT

    return [GuessCharacter(c, s) for c, s in zip(guess, statuses)]


def evaluate_guesses(word: str, guesses: Iterable[str]) -> list[list[GuessCharacter]]:
    return [evaluate_guess(word, g) for g in guesses]


# ---------------------------------------------------------------------------
# Hard mode
# ---------------------------------------------------------------------------
def violates_hard_mode(word: str, guess: str, prior_guesses: Sequence[str]) -> bool:
    """True if *guess* drops a hint revealed by any prior guess.

    A CORRECT letter must stay in its position; every revealed letter
    (CORRECT or WRONG_POSITION) must appear at least as many times as it
    was revealed in that earlier guess.
    """
    guess_counts = Counter(guess)
    for prior in prior_guesses:
        revealed: Counter[str] = Counter()
        for i, gc in enumerate(evaluate_guess(word, prior)):
            if gc.status is GuessStatus.CORRECT:
                if guess[i] != gc.character:
                    return True
                revealed[gc.character] += 1
            elif gc.status is GuessStatus.WRONG_POSITION:
                revealed[gc.character] += 1
        for letter, count in revealed.items():
            if guess_counts[letter] < count:
                return True
    return False


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
def validate_guess(
    text: str | None,
    *,
    word: str,
    guesses: Sequence[str],
    is_hard_mode: bool,
    dictionary: Dictionary,
) -> ValidationResult:
    """Run the ordered validation checks on a raw guess.

    The input is trimmed and lower-cased first.  Returns the first failing
    :class:`ValidationResult`, or ``VALID``.
    """
    guess = normalize_guess(text)
    if not guess:
        return ValidationResult.INVALID_EMPTY
    if len(guess) != WORD_LENGTH:
        return ValidationResult.INVALID_SIZE
    if not _WORD_RE.match(guess):
        return ValidationResult.INVALID_FORMAT
    # Custom words need not be in the dictionary; the answer itself is always accepted.
    if guess != word and not dictionary.is_valid_word(guess):
        return ValidationResult.INVALID_WORD
    if guess in guesses:
        return ValidationResult.INVALID_ALREADY_GUESSED
    if is_hard_mode and guesses and violates_hard_mode(word, guess, guesses):
        return ValidationResult.INVALID_HARD_MODE
    return ValidationResult.VALID


# ---------------------------------------------------------------------------
# Keyboard
# ---------------------------------------------------------------------------
_STATUS_RANK = {
    GuessStatus.INCORRECT: 0,
    GuessStatus.WRONG_POSITION: 1,
    GuessStatus.CORRECT: 2,
}


def keyboard_summary(word: str, guesses: Iterable[str]) -> dict[str, GuessStatus]:
    """Best-known status per guessed letter."""
    keys: dict[str, GuessStatus] = {}
    for row in evaluate_guesses(word, guesses):
        for gc in row:
            current = keys.get(gc.character)
            if current is None or _STATUS_RANK[gc.status] > _STATUS_RANK[current]:
                keys[gc.character] = gc.status
    return keys

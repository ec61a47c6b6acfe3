# wordgame/session.py

import logging
from dataclasses import dataclass
from enum import Enum

from .exceptions import InvalidConfiguration, InvalidState
from .words import level_for, word_list

logger = logging.getLogger(__name__)


class GuessResult(str, Enum):
    WIN = 'win'
    RETRY = 'retry'


@dataclass(frozen=True)
class SessionSnapshot:
    attempts: int
    guess_history: tuple
    won: bool


def normalize(raw):
    """Убрать пробелы по краям и привести к верхнему регистру."""
    return str(raw).strip().upper()


class GameSession:
    """Одна партия: список слов уровня, попытки и история догадок.

    Состояния: ``in_progress`` -> ``in_progress`` (неверная догадка) или
    ``in_progress`` -> ``won`` (верная догадка, конечное состояние).
    """

    IN_PROGRESS = 'in_progress'
    WON = 'won'

    def __init__(self, level, words, player_name=None):
        words = [normalize(word) for word in words]
        if not words:
            raise InvalidConfiguration("Word list must not be empty")

        self.level = level
        self.word_list = words
        self.player_name = player_name
        self.attempts = 0
        self.guess_history = []
        self.won = False

    @classmethod
    def for_difficulty(cls, difficulty, player_name=None):
        level = level_for(difficulty)
        return cls(level, word_list(level), player_name=player_name)

    @property
    def state(self):
        return self.WON if self.won else self.IN_PROGRESS

    def submit_guess(self, raw):
        if self.won:
            raise InvalidState("Game is already won")

        guess = normalize(raw)
        self.guess_history.append(guess)
        self.attempts += 1

        if guess in self.word_list:
            self.won = True
            logger.debug(f"Guess '{guess}' won after {self.attempts} attempts")
            return GuessResult.WIN
        return GuessResult.RETRY

    def snapshot(self):
        return SessionSnapshot(
            attempts=self.attempts,
            guess_history=tuple(self.guess_history),
            won=self.won,
        )

    def __repr__(self):
        return f"<GameSession level={self.level} attempts={self.attempts} state={self.state}>"

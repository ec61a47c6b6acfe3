# wordgame/scores.py

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone as dt_timezone

from django.conf import settings
from django.utils import timezone

from .exceptions import (
    InvalidConfiguration,
    InvalidState,
    PersistenceCorrupt,
    PersistenceReadFailed,
    PersistenceWriteFailed,
)

logger = logging.getLogger(__name__)

DATE_DISPLAY_FORMAT = '%m/%d/%Y, %H:%M'


@dataclass(frozen=True)
class Entry:
    name: str
    score: int
    date: datetime
    guesses: tuple


def _by_score(entry):
    return entry.score


def _is_count(value):
    return isinstance(value, int) and not isinstance(value, bool)


def entry_to_dict(entry):
    return {
        'name': entry.name,
        'score': entry.score,
        'date': entry.date.isoformat(),
        'guesses': list(entry.guesses),
    }


def format_date(entry):
    return timezone.localtime(entry.date).strftime(DATE_DISPLAY_FORMAT)


def _parse_date(value):
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError as e:
            raise PersistenceCorrupt(f"Bad date: {value!r}") from e
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=dt_timezone.utc)
        return parsed
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value, tz=dt_timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise PersistenceCorrupt(f"Bad timestamp: {value!r}") from e
    raise PersistenceCorrupt(f"Bad date: {value!r}")


def entry_from_dict(item):
    """Разобрать одну запись; любое нарушение инвариантов считается порчей данных."""
    if not isinstance(item, dict):
        raise PersistenceCorrupt(f"Entry is not an object: {item!r}")

    name = item.get('name')
    score = item.get('score')
    guesses = item.get('guesses')

    if not isinstance(name, str) or not name.strip():
        raise PersistenceCorrupt(f"Bad name: {name!r}")
    if not _is_count(score) or score < 1:
        raise PersistenceCorrupt(f"Bad score: {score!r}")
    if not isinstance(guesses, list) or not all(isinstance(g, str) for g in guesses):
        raise PersistenceCorrupt(f"Bad guesses: {guesses!r}")
    if len(guesses) != score:
        raise PersistenceCorrupt(f"{len(guesses)} guesses stored for score {score}")

    return Entry(name=name, score=score, date=_parse_date(item.get('date')), guesses=tuple(guesses))


def serialize(entries):
    return json.dumps([entry_to_dict(entry) for entry in entries], ensure_ascii=False)


def deserialize(raw):
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise PersistenceCorrupt(f"Not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise PersistenceCorrupt("Stored scores are not a list")
    return [entry_from_dict(item) for item in data]


class ScoreStore:
    """Таблица рекордов: записи по возрастанию числа попыток.

    Единственный писатель в слот ``key``; читатели получают неизменяемые
    снимки. Записи с одинаковым счётом остаются в порядке добавления.
    Запись идёт через ``storage.update``: сохранённый список перечитывается
    под блокировкой, поэтому записи других процессов не теряются.
    """

    def __init__(self, storage, key=None, clock=timezone.now):
        self.storage = storage
        self.key = key or settings.WORDGAME_SCORES_KEY
        self.clock = clock
        self.pending_write = False
        self._entries = []
        self._lock = threading.Lock()

    def load(self):
        try:
            raw = self.storage.get(self.key)
        except PersistenceReadFailed as e:
            logger.warning(f"Could not read scores under '{self.key}', starting empty: {e}")
            raw = None
        entries = self._decode(raw)

        with self._lock:
            self._entries = sorted(entries, key=_by_score)
            self.pending_write = False
        logger.debug(f"Loaded {len(entries)} scores from '{self.key}'")
        return self.all_entries()

    def all_entries(self):
        return tuple(self._entries)

    def add_entry(self, name, score, guesses):
        if not isinstance(name, str) or not name.strip():
            raise InvalidConfiguration("Player name must not be empty")
        if not _is_count(score) or score < 1:
            raise InvalidConfiguration(f"Score must be a positive integer, got {score!r}")
        if isinstance(guesses, str):
            raise InvalidConfiguration("Guesses must be a sequence of strings, not a string")
        guesses = tuple(guesses)
        if not all(isinstance(g, str) for g in guesses):
            raise InvalidConfiguration("Guesses must be strings")
        if len(guesses) != score:
            raise InvalidConfiguration(f"Expected {score} guesses, got {len(guesses)}")

        with self._lock:
            entry = Entry(name=name.strip(), score=score, date=self.clock(), guesses=guesses)
            self._persist([entry])

        logger.info(f"Recorded score {entry.score} for {entry.name}")
        return entry

    def record_session(self, name, session):
        snapshot = session.snapshot()
        if not snapshot.won:
            raise InvalidState("Only a won game can be recorded")
        return self.add_entry(name, snapshot.attempts, snapshot.guess_history)

    def persist(self):
        with self._lock:
            return self._persist()

    def _decode(self, raw):
        if raw is None:
            return []
        try:
            return deserialize(raw)
        except PersistenceCorrupt as e:
            logger.warning(f"Stored scores under '{self.key}' are corrupt, starting empty: {e}")
            return []

    def _merge(self, stored, new):
        """Сохранённые записи, затем ещё не записанные свои, затем новые."""
        known = set(stored)
        merged = list(stored)
        merged.extend(entry for entry in self._entries if entry not in known)
        merged.extend(new)
        return sorted(merged, key=_by_score)

    def _persist(self, new=()):
        merged = []

        def apply(raw):
            merged[:] = self._merge(self._decode(raw), new)
            return serialize(merged)

        try:
            self.storage.update(self.key, apply)
        except PersistenceWriteFailed as e:
            # Новый список вместо сортировки на месте: читатели видят целый снимок
            self._entries = sorted(self._entries + list(new), key=_by_score)
            self.pending_write = True
            logger.warning(f"Could not save {len(self._entries)} scores, keeping them in memory: {e}")
            return False

        self._entries = list(merged)
        self.pending_write = False
        return True

    def __len__(self):
        return len(self._entries)

# wordgame/storage.py

import logging
import threading

from django.conf import settings
from django.db import transaction, DatabaseError

from .exceptions import InvalidConfiguration, PersistenceReadFailed, PersistenceWriteFailed
from .models import StoredValue
from .words import DEFAULT_DIFFICULTY, LEVELS

logger = logging.getLogger(__name__)


class KeyValueStorage:
    """Локальное хранилище строк по ключу."""

    def get(self, key):
        raise NotImplementedError

    def set(self, key, value):
        raise NotImplementedError

    def update(self, key, func):
        """Атомарно заменить значение на ``func(текущее значение)``; вернуть новое."""
        raise NotImplementedError


class MemoryStorage(KeyValueStorage):
    def __init__(self, initial=None):
        self.data = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value

    def update(self, key, func):
        with self._lock:
            value = func(self.get(key))
            self.set(key, value)
        return value


class DatabaseStorage(KeyValueStorage):
    """Хранилище поверх модели ``StoredValue``: одна строка на ключ."""

    def get(self, key):
        try:
            row = StoredValue.objects.filter(key=key).first()
        except DatabaseError as e:
            logger.error(f"Database error reading '{key}': {e}")
            raise PersistenceReadFailed(f"Could not read '{key}'") from e
        return row.value if row is not None else None

    def set(self, key, value):
        try:
            with transaction.atomic():
                StoredValue.objects.update_or_create(key=key, defaults={'value': value})
        except DatabaseError as e:
            logger.error(f"Database error writing '{key}': {e}")
            raise PersistenceWriteFailed(f"Could not write '{key}'") from e

    def update(self, key, func):
        try:
            StoredValue.objects.get_or_create(key=key)
            with transaction.atomic():
                # Блокируем строку, чтобы параллельные процессы не затёрли друг друга
                row = StoredValue.objects.select_for_update().get(key=key)
                row.value = func(row.value or None)
                row.save()
        except DatabaseError as e:
            logger.error(f"Database error updating '{key}': {e}")
            raise PersistenceWriteFailed(f"Could not update '{key}'") from e
        return row.value


# --- Настройка сложности ---

def get_difficulty(storage, key=None):
    key = key or settings.WORDGAME_DIFFICULTY_KEY
    try:
        value = storage.get(key)
    except PersistenceReadFailed as e:
        logger.warning(f"Could not read difficulty, using {DEFAULT_DIFFICULTY}: {e}")
        return DEFAULT_DIFFICULTY
    if value not in LEVELS:
        return DEFAULT_DIFFICULTY
    return value


def set_difficulty(storage, value, key=None):
    if value not in LEVELS:
        raise InvalidConfiguration(f"Unknown difficulty: {value!r}")
    storage.set(key or settings.WORDGAME_DIFFICULTY_KEY, value)
    logger.info(f"Difficulty set to {value}")
    return value

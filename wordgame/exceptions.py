# wordgame/exceptions.py


class WordGameError(Exception):
    """Базовая ошибка игры."""


class InvalidConfiguration(WordGameError, ValueError):
    """Пустой список слов, пустое имя игрока, неверный счёт или история попыток."""


class InvalidState(WordGameError):
    """Попытка после того, как игра уже выиграна."""


class PersistenceCorrupt(WordGameError):
    """Сохранённые данные не удалось разобрать."""


class PersistenceReadFailed(WordGameError):
    """Не удалось прочитать данные из хранилища."""


class PersistenceWriteFailed(WordGameError):
    """Не удалось записать данные в хранилище."""

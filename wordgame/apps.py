import threading

from django.apps import AppConfig


class WordgameConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'wordgame'

    def ready(self):
        self._score_store = None
        self._store_lock = threading.Lock()

    @property
    def score_store(self):
        """Общая на процесс таблица рекордов; загружается при первом обращении."""
        if self._score_store is None:
            with self._store_lock:
                if self._score_store is None:
                    from .scores import ScoreStore
                    from .storage import DatabaseStorage

                    store = ScoreStore(DatabaseStorage())
                    store.load()
                    self._score_store = store
        return self._score_store

    def reset_score_store(self):
        self._score_store = None

import json
import threading
from datetime import datetime, timedelta, timezone as dt_timezone
from io import StringIO
from unittest import mock

from django.apps import apps
from django.conf import settings
from django.core.cache import cache
from django.core.management import call_command
from django.db import DatabaseError
from django.test import Client, SimpleTestCase, TestCase, override_settings

from .exceptions import (
    InvalidConfiguration,
    InvalidState,
    PersistenceCorrupt,
    PersistenceReadFailed,
    PersistenceWriteFailed,
)
from .models import StoredValue
from .scores import Entry, ScoreStore, deserialize, serialize
from .session import GameSession, GuessResult, normalize
from .storage import DatabaseStorage, MemoryStorage, get_difficulty, set_difficulty
from .words import level_for, level_name, word_list

FRUITS = ['APPLE', 'MANGO', 'GRAPE', 'LEMON', 'GUAVA']
START = datetime(2025, 3, 2, 12, 0, tzinfo=dt_timezone.utc)


class FakeClock:
    def __init__(self, start=START):
        self.now = start

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


class BrokenStorage(MemoryStorage):
    def set(self, key, value):
        raise PersistenceWriteFailed('disk full')


class WordsTests(SimpleTestCase):
    def test_difficulty_maps_to_level(self):
        self.assertEqual(level_for('Easy'), 1)
        self.assertEqual(level_for('Medium'), 2)
        self.assertEqual(level_for('Hard'), 3)

    def test_unknown_difficulty_is_easy(self):
        self.assertEqual(level_for('Impossible'), 1)
        self.assertEqual(level_for(None), 1)

    def test_word_lists(self):
        self.assertEqual(word_list(2), FRUITS)
        self.assertIn('SUNDAY', word_list(1))
        self.assertIn('TESLA', word_list(3))
        self.assertEqual(word_list(7), ['APPLE'])

    def test_level_names(self):
        self.assertEqual(level_name(3), 'Car Brands')
        self.assertEqual(level_name(0), '')


class GameSessionTests(SimpleTestCase):
    def test_empty_word_list_rejected(self):
        with self.assertRaises(InvalidConfiguration):
            GameSession(2, [])

    def test_normalize_is_idempotent(self):
        for raw in ['  lemon ', 'Lemon', '\tguava\n', '', 'ÄPFEL', 'two words ']:
            self.assertEqual(normalize(normalize(raw)), normalize(raw))

    def test_retry_then_win(self):
        game = GameSession(2, FRUITS)
        self.assertEqual(game.submit_guess('banana'), GuessResult.RETRY)
        self.assertEqual(game.state, GameSession.IN_PROGRESS)
        self.assertEqual(game.submit_guess(' lemon '), GuessResult.WIN)

        snapshot = game.snapshot()
        self.assertEqual(snapshot.attempts, 2)
        self.assertEqual(snapshot.guess_history, ('BANANA', 'LEMON'))
        self.assertTrue(snapshot.won)
        self.assertEqual(game.state, GameSession.WON)

    def test_word_list_is_normalized(self):
        game = GameSession(1, ['  monday '])
        self.assertEqual(game.submit_guess('Monday'), GuessResult.WIN)

    def test_win_iff_normalized_match(self):
        for guess in ['apple', 'APPLE', ' Apple\n', 'appl', 'apples', 'MANGOO', '']:
            game = GameSession(2, FRUITS)
            expected = GuessResult.WIN if normalize(guess) in FRUITS else GuessResult.RETRY
            self.assertEqual(game.submit_guess(guess), expected, guess)

    def test_repeated_guesses_are_counted(self):
        game = GameSession(2, FRUITS)
        for _ in range(3):
            game.submit_guess('kiwi')
        snapshot = game.snapshot()
        self.assertEqual(snapshot.attempts, 3)
        self.assertEqual(snapshot.guess_history, ('KIWI', 'KIWI', 'KIWI'))

    def test_attempts_track_history(self):
        game = GameSession(2, FRUITS)
        for n, guess in enumerate(['a', 'b', 'c', 'd'], start=1):
            game.submit_guess(guess)
            self.assertEqual(game.attempts, n)
            self.assertEqual(len(game.guess_history), game.attempts)

    def test_guess_after_win_rejected(self):
        game = GameSession(2, FRUITS)
        game.submit_guess('grape')
        with self.assertRaises(InvalidState):
            game.submit_guess('mango')
        self.assertEqual(game.attempts, 1)

    def test_for_difficulty(self):
        game = GameSession.for_difficulty('Hard', player_name='Sam')
        self.assertEqual(game.level, 3)
        self.assertEqual(game.player_name, 'Sam')
        self.assertEqual(game.submit_guess('audi'), GuessResult.WIN)

    def test_snapshot_is_detached(self):
        game = GameSession(2, FRUITS)
        game.submit_guess('kiwi')
        snapshot = game.snapshot()
        game.submit_guess('lemon')
        self.assertEqual(snapshot.attempts, 1)
        self.assertEqual(snapshot.guess_history, ('KIWI',))


class SerializationTests(SimpleTestCase):
    def test_round_trip(self):
        entries = [
            Entry('Sam', 1, START, ('X',)),
            Entry('Abinet', 3, START + timedelta(microseconds=1500), ('A', 'B', 'C')),
            Entry('Zoë', 2, START, ('Ä', ' lemon ')),
        ]
        self.assertEqual(deserialize(serialize(entries)), entries)

    def test_stored_layout(self):
        data = json.loads(serialize([Entry('Sam', 1, START, ('X',))]))
        self.assertEqual(data, [{
            'name': 'Sam',
            'score': 1,
            'date': '2025-03-02T12:00:00+00:00',
            'guesses': ['X'],
        }])

    def test_epoch_date(self):
        entries = deserialize('[{"name": "Sam", "score": 1, "date": 0, "guesses": ["X"]}]')
        self.assertEqual(entries[0].date, datetime(1970, 1, 1, tzinfo=dt_timezone.utc))

    def test_malformed_payloads(self):
        bad = [
            'not json',
            '{"name": "Sam"}',
            '[1]',
            '[{"name": "", "score": 1, "date": 0, "guesses": ["X"]}]',
            '[{"name": "Sam", "score": 0, "date": 0, "guesses": []}]',
            '[{"name": "Sam", "score": true, "date": 0, "guesses": ["X"]}]',
            '[{"name": "Sam", "score": 2, "date": 0, "guesses": ["X"]}]',
            '[{"name": "Sam", "score": 1, "date": "yesterday", "guesses": ["X"]}]',
            '[{"name": "Sam", "score": 1, "guesses": ["X"]}]',
            '[{"name": "Sam", "score": 1, "date": 0, "guesses": [1]}]',
        ]
        for raw in bad:
            with self.assertRaises(PersistenceCorrupt, msg=raw):
                deserialize(raw)


class ScoreStoreTests(SimpleTestCase):
    def setUp(self):
        self.storage = MemoryStorage()
        self.store = ScoreStore(self.storage, clock=FakeClock())
        self.store.load()

    def test_ranked_by_attempts(self):
        self.store.add_entry('Abinet', 3, ['A', 'B', 'C'])
        self.store.add_entry('Sam', 1, ['X'])
        self.assertEqual([(e.name, e.score) for e in self.store.all_entries()], [('Sam', 1), ('Abinet', 3)])

    def test_ties_keep_insertion_order(self):
        for name, score in [('a', 2), ('b', 1), ('c', 2), ('d', 1), ('e', 3), ('f', 2)]:
            self.store.add_entry(name, score, ['G'] * score)
        entries = self.store.all_entries()
        self.assertEqual([e.name for e in entries], ['b', 'd', 'a', 'c', 'f', 'e'])
        self.assertEqual([e.score for e in entries], sorted(e.score for e in entries))

    def test_add_entry_returns_entry(self):
        entry = self.store.add_entry('Sam', 2, ('BANANA', 'LEMON'))
        self.assertEqual(entry.name, 'Sam')
        self.assertEqual(entry.guesses, ('BANANA', 'LEMON'))
        self.assertEqual(entry.date, START + timedelta(seconds=1))

    def test_invalid_entries_rejected(self):
        with self.assertRaises(InvalidConfiguration):
            self.store.add_entry('', 1, ['X'])
        with self.assertRaises(InvalidConfiguration):
            self.store.add_entry('   ', 1, ['X'])
        with self.assertRaises(InvalidConfiguration):
            self.store.add_entry('Sam', 0, [])
        with self.assertRaises(InvalidConfiguration):
            self.store.add_entry('Sam', 2, ['X'])
        self.assertEqual(self.store.all_entries(), ())
        self.assertIsNone(self.storage.get(settings.WORDGAME_SCORES_KEY))

    def test_string_guesses_rejected(self):
        with self.assertRaises(InvalidConfiguration):
            self.store.add_entry('Sam', 3, 'ABC')
        self.assertEqual(self.store.all_entries(), ())

    def test_persisted_on_add(self):
        self.store.add_entry('Sam', 1, ['X'])
        reloaded = ScoreStore(self.storage)
        self.assertEqual(reloaded.load(), self.store.all_entries())

    def test_snapshot_does_not_change(self):
        self.store.add_entry('Abinet', 3, ['A', 'B', 'C'])
        snapshot = self.store.all_entries()
        self.store.add_entry('Sam', 1, ['X'])
        self.assertEqual(len(snapshot), 1)
        self.assertEqual(len(self.store.all_entries()), 2)

    def test_load_without_data(self):
        self.assertEqual(ScoreStore(MemoryStorage()).load(), ())

    def test_load_corrupt_data(self):
        storage = MemoryStorage({settings.WORDGAME_SCORES_KEY: '{{{'})
        with self.assertLogs('wordgame.scores', level='WARNING'):
            self.assertEqual(ScoreStore(storage).load(), ())

    def test_load_sorts_stored_entries(self):
        stored = serialize([Entry('Abinet', 3, START, ('A', 'B', 'C')), Entry('Sam', 1, START, ('X',))])
        entries = ScoreStore(MemoryStorage({settings.WORDGAME_SCORES_KEY: stored})).load()
        self.assertEqual([e.name for e in entries], ['Sam', 'Abinet'])

    def test_custom_key(self):
        store = ScoreStore(self.storage, key='otherScores')
        store.add_entry('Sam', 1, ['X'])
        self.assertIsNotNone(self.storage.get('otherScores'))
        self.assertIsNone(self.storage.get(settings.WORDGAME_SCORES_KEY))

    @override_settings(WORDGAME_SCORES_KEY='savedScores', WORDGAME_DIFFICULTY_KEY='savedLevel')
    def test_keys_come_from_settings(self):
        store = ScoreStore(self.storage)
        store.add_entry('Sam', 1, ['X'])
        set_difficulty(self.storage, 'Hard')
        self.assertEqual(store.key, 'savedScores')
        self.assertIsNotNone(self.storage.get('savedScores'))
        self.assertEqual(self.storage.get('savedLevel'), 'Hard')
        self.assertEqual(get_difficulty(self.storage), 'Hard')

    def test_stores_sharing_a_slot_keep_each_others_entries(self):
        first = ScoreStore(self.storage, clock=FakeClock())
        second = ScoreStore(self.storage, clock=FakeClock(START + timedelta(hours=1)))
        first.load()
        second.load()

        first.add_entry('Abinet', 3, ['A', 'B', 'C'])
        second.add_entry('Sam', 1, ['X'])

        self.assertEqual([e.name for e in second.all_entries()], ['Sam', 'Abinet'])
        reloaded = ScoreStore(self.storage).load()
        self.assertEqual([e.name for e in reloaded], ['Sam', 'Abinet'])

    def test_unsaved_entries_survive_next_write(self):
        store = ScoreStore(BrokenStorage(), clock=FakeClock())
        with self.assertLogs('wordgame.scores', level='WARNING'):
            store.add_entry('Abinet', 3, ['A', 'B', 'C'])

        store.storage = MemoryStorage()
        store.add_entry('Sam', 1, ['X'])
        saved = deserialize(store.storage.get(settings.WORDGAME_SCORES_KEY))
        self.assertEqual([e.name for e in saved], ['Sam', 'Abinet'])
        self.assertFalse(store.pending_write)

    def test_write_failure_keeps_memory(self):
        store = ScoreStore(BrokenStorage())
        with self.assertLogs('wordgame.scores', level='WARNING'):
            store.add_entry('Sam', 1, ['X'])
        self.assertEqual(len(store.all_entries()), 1)
        self.assertTrue(store.pending_write)

    def test_pending_write_retried(self):
        storage = BrokenStorage()
        store = ScoreStore(storage)
        with self.assertLogs('wordgame.scores', level='WARNING'):
            store.add_entry('Sam', 1, ['X'])
            self.assertFalse(store.persist())

        store.storage = MemoryStorage()
        self.assertTrue(store.persist())
        self.assertFalse(store.pending_write)
        self.assertEqual(len(deserialize(store.storage.get(settings.WORDGAME_SCORES_KEY))), 1)

    def test_record_session(self):
        game = GameSession(2, FRUITS)
        game.submit_guess('banana')
        with self.assertRaises(InvalidState):
            self.store.record_session('Abinet', game)
        game.submit_guess(' lemon ')
        entry = self.store.record_session('Abinet', game)
        self.assertEqual(entry.score, 2)
        self.assertEqual(entry.guesses, ('BANANA', 'LEMON'))

    def test_concurrent_adds(self):
        def worker(n):
            for _ in range(20):
                self.store.add_entry(f'p{n}', 1, ['X'])

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(len(self.store), 80)
        self.assertEqual(len(deserialize(self.storage.get(settings.WORDGAME_SCORES_KEY))), 80)


class DatabaseStorageTests(TestCase):
    def test_missing_key(self):
        self.assertIsNone(DatabaseStorage().get('playerScores'))

    def test_set_and_overwrite(self):
        storage = DatabaseStorage()
        storage.set('playerScores', '[]')
        storage.set('playerScores', '[1]')
        self.assertEqual(storage.get('playerScores'), '[1]')
        self.assertEqual(StoredValue.objects.count(), 1)

    def test_database_error_becomes_write_failure(self):
        with mock.patch.object(StoredValue.objects, 'update_or_create', side_effect=DatabaseError('locked')):
            with self.assertLogs('wordgame.storage', level='ERROR'):
                with self.assertRaises(PersistenceWriteFailed):
                    DatabaseStorage().set('playerScores', '[]')

    def test_store_round_trip(self):
        store = ScoreStore(DatabaseStorage())
        store.load()
        store.add_entry('Abinet', 3, ['A', 'B', 'C'])
        store.add_entry('Sam', 1, ['X'])
        self.assertEqual(ScoreStore(DatabaseStorage()).load(), store.all_entries())

    def test_difficulty_preference(self):
        storage = DatabaseStorage()
        self.assertEqual(get_difficulty(storage), 'Easy')
        set_difficulty(storage, 'Hard')
        self.assertEqual(get_difficulty(storage), 'Hard')
        with self.assertRaises(InvalidConfiguration):
            set_difficulty(storage, 'Extreme')
        StoredValue.objects.filter(key='difficulty').update(value='Extreme')
        self.assertEqual(get_difficulty(storage), 'Easy')

    def test_two_stores_keep_each_others_entries(self):
        first = ScoreStore(DatabaseStorage())
        second = ScoreStore(DatabaseStorage())
        first.load()
        second.load()

        first.add_entry('Abinet', 3, ['A', 'B', 'C'])
        second.add_entry('Sam', 1, ['X'])

        reloaded = ScoreStore(DatabaseStorage()).load()
        self.assertEqual([e.name for e in reloaded], ['Sam', 'Abinet'])
        self.assertEqual(second.all_entries(), reloaded)
        self.assertEqual(StoredValue.objects.count(), 1)

    def test_read_error_becomes_read_failure(self):
        with mock.patch.object(StoredValue.objects, 'filter', side_effect=DatabaseError('locked')):
            with self.assertLogs('wordgame.storage', level='ERROR'):
                with self.assertRaises(PersistenceReadFailed):
                    DatabaseStorage().get('playerScores')

    def test_load_survives_read_error(self):
        with mock.patch.object(StoredValue.objects, 'filter', side_effect=DatabaseError('locked')):
            with self.assertLogs('wordgame', level='WARNING'):
                self.assertEqual(ScoreStore(DatabaseStorage()).load(), ())
                self.assertEqual(get_difficulty(DatabaseStorage()), 'Easy')

    def test_update_error_keeps_memory(self):
        store = ScoreStore(DatabaseStorage())
        store.load()
        with mock.patch.object(StoredValue.objects, 'select_for_update', side_effect=DatabaseError('locked')):
            with self.assertLogs('wordgame', level='WARNING'):
                store.add_entry('Sam', 1, ['X'])
        self.assertTrue(store.pending_write)
        self.assertEqual([e.name for e in store.all_entries()], ['Sam'])

        self.assertTrue(store.persist())
        self.assertEqual([e.name for e in ScoreStore(DatabaseStorage()).load()], ['Sam'])


class ViewTests(TestCase):
    def setUp(self):
        apps.get_app_config('wordgame').reset_score_store()
        cache.clear()

    def tearDown(self):
        apps.get_app_config('wordgame').reset_score_store()

    def play(self, *guesses):
        self.client.post('/player/', {'name': 'Abinet'})
        self.client.post('/play/')
        return [self.client.post('/play/guess/', {'guess': g}).json() for g in guesses]

    def test_dashboard_defaults(self):
        data = self.client.get('/').json()
        self.assertEqual(data['difficulty'], 'Easy')
        self.assertEqual(data['level'], 1)
        self.assertEqual(data['level_name'], 'Weekdays')
        self.assertIsNone(data['player_name'])
        self.assertEqual(data['score'], 0)

    def test_empty_name_rejected(self):
        response = self.client.post('/player/', {'name': '   '})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['status'], 'error')

    def test_play_requires_name(self):
        self.assertEqual(self.client.post('/play/').status_code, 400)

    def test_settings(self):
        self.assertEqual(self.client.get('/settings/').json()['difficulty'], 'Easy')
        response = self.client.post('/settings/', {'difficulty': 'Medium'})
        self.assertEqual(response.json()['difficulty'], 'Medium')
        self.assertEqual(self.client.get('/').json()['level_name'], 'Fruits')
        self.assertEqual(self.client.post('/settings/', {'difficulty': 'Nope'}).status_code, 400)

    def test_post_requires_csrf_token(self):
        client = Client(enforce_csrf_checks=True)
        self.assertEqual(client.post('/settings/', {'difficulty': 'Hard'}).status_code, 403)
        self.assertEqual(client.post('/player/', {'name': 'Sam'}).status_code, 403)
        self.assertEqual(self.client.get('/settings/').json()['difficulty'], 'Easy')

    def test_leaderboard_survives_read_error(self):
        with mock.patch.object(StoredValue.objects, 'filter', side_effect=DatabaseError('locked')):
            with self.assertLogs('wordgame', level='WARNING'):
                response = self.client.get('/leaderboard/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['entries'], [])

    def test_guess_without_game(self):
        self.assertEqual(self.client.post('/play/guess/', {'guess': 'monday'}).status_code, 404)

    def test_full_game(self):
        self.client.post('/settings/', {'difficulty': 'Medium'})
        retry, win = self.play('banana', ' lemon ')

        self.assertEqual(retry['result'], 'retry')
        self.assertEqual(retry['message'], 'Try again!')
        self.assertEqual(win['result'], 'win')
        self.assertEqual(win['message'], 'Good job!')
        self.assertEqual(win['attempts'], 2)
        self.assertEqual(win['guesses'], ['BANANA', 'LEMON'])

        entries = self.client.get('/leaderboard/').json()['entries']
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0]['name'], 'Abinet')
        self.assertEqual(entries[0]['score'], 2)
        self.assertEqual(entries[0]['guesses_display'], 'BANANA, LEMON')
        self.assertEqual(self.client.get('/').json()['score'], 1)

        stored = deserialize(StoredValue.objects.get(key='playerScores').value)
        self.assertEqual(stored[0].guesses, ('BANANA', 'LEMON'))

    def test_guess_after_win(self):
        self.play('sunday')
        response = self.client.post('/play/guess/', {'guess': 'monday'})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(len(self.client.get('/leaderboard/').json()['entries']), 1)

    def test_leaderboard_ranking(self):
        self.play('x', 'y', 'friday')
        self.play('monday')
        entries = self.client.get('/leaderboard/').json()['entries']
        self.assertEqual([(e['rank'], e['score']) for e in entries], [(1, 1), (2, 3)])


class ShowLeaderboardCommandTests(TestCase):
    def setUp(self):
        apps.get_app_config('wordgame').reset_score_store()

    def tearDown(self):
        apps.get_app_config('wordgame').reset_score_store()

    def test_empty(self):
        out = StringIO()
        call_command('show_leaderboard', stdout=out)
        self.assertIn('No scores yet', out.getvalue())

    def test_lists_ranked_entries(self):
        store = apps.get_app_config('wordgame').score_store
        store.add_entry('Abinet', 3, ['A', 'B', 'C'])
        store.add_entry('Sam', 1, ['X'])

        out = StringIO()
        call_command('show_leaderboard', '--limit', '1', stdout=out)
        output = out.getvalue()
        self.assertIn('1. Sam - 1 attempts [X]', output)
        self.assertNotIn('Abinet', output)

# wordgame/views.py

import logging

from django.apps import apps
from django.conf import settings
from django.core.cache import cache
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST, require_http_methods

from .exceptions import InvalidConfiguration, InvalidState, PersistenceWriteFailed
from .scores import format_date
from .session import GameSession, GuessResult
from .storage import DatabaseStorage, get_difficulty, set_difficulty
from .words import DIFFICULTY_CHOICES, level_for, level_name

logger = logging.getLogger(__name__)

PLAYER_SESSION_KEY = 'wordgame_player_name'
SCORE_SESSION_KEY = 'wordgame_score'

WIN_MESSAGE = 'Good job!'
RETRY_MESSAGE = 'Try again!'


def get_score_store():
    return apps.get_app_config('wordgame').score_store


def current_difficulty():
    return get_difficulty(DatabaseStorage())


def _error(message, status):
    return JsonResponse({'status': 'error', 'message': message}, status=status)


def _game_cache_key(request):
    """Ключ кэша для текущей игры браузерной сессии."""
    if not request.session.session_key:
        request.session.save()
    return f"wordgame:game:{request.session.session_key}"


def entry_payload(rank, entry):
    return {
        'rank': rank,
        'name': entry.name,
        'score': entry.score,
        'guesses': list(entry.guesses),
        'guesses_display': ', '.join(entry.guesses),
        'date': entry.date.isoformat(),
        'date_display': format_date(entry),
    }


# --- Основные экраны ---

@require_GET
def dashboard(request):
    difficulty = current_difficulty()
    level = level_for(difficulty)
    return JsonResponse({
        'status': 'success',
        'difficulty': difficulty,
        'level': level,
        'level_name': level_name(level),
        'player_name': request.session.get(PLAYER_SESSION_KEY),
        'score': request.session.get(SCORE_SESSION_KEY, 0),
    })


@require_POST
def set_player_name(request):
    name = request.POST.get('name', '').strip()
    if not name:
        return _error('Player name must not be empty.', 400)

    request.session[PLAYER_SESSION_KEY] = name
    logger.info(f"Player name set: {name}")
    return JsonResponse({'status': 'success', 'player_name': name})


@require_http_methods(['GET', 'POST'])
def game_settings(request):
    storage = DatabaseStorage()
    if request.method == 'POST':
        try:
            set_difficulty(storage, request.POST.get('difficulty', ''))
        except InvalidConfiguration:
            return _error('Unknown difficulty.', 400)
        except PersistenceWriteFailed:
            return _error('Could not save the difficulty.', 500)

    difficulty = get_difficulty(storage)
    return JsonResponse({
        'status': 'success',
        'difficulty': difficulty,
        'choices': [{'value': value, 'label': label} for value, label in DIFFICULTY_CHOICES],
    })


# --- Игра ---

@require_POST
def start_game(request):
    player_name = request.session.get(PLAYER_SESSION_KEY)
    if not player_name:
        return _error('Set your name before playing.', 400)

    game = GameSession.for_difficulty(current_difficulty(), player_name=player_name)

    cache.set(_game_cache_key(request), game, timeout=settings.WORDGAME_GAME_TIMEOUT)
    logger.info(f"Game started for {player_name} on level {game.level}")
    return JsonResponse({
        'status': 'success',
        'level': game.level,
        'level_name': level_name(game.level),
        'player_name': player_name,
        'attempts': game.attempts,
    })


@require_POST
def submit_guess(request):
    cache_key = _game_cache_key(request)
    game = cache.get(cache_key)
    if game is None:
        return _error('No game in progress.', 404)

    try:
        result = game.submit_guess(request.POST.get('guess', ''))
    except InvalidState:
        logger.warning(f"Guess submitted after win by {game.player_name}")
        return _error('This game is already won.', 409)

    if result is GuessResult.WIN:
        try:
            get_score_store().record_session(game.player_name, game)
        except InvalidConfiguration as e:
            logger.error(f"Could not record score for {game.player_name!r}: {e}")
        request.session[SCORE_SESSION_KEY] = request.session.get(SCORE_SESSION_KEY, 0) + 1

    cache.set(cache_key, game, timeout=settings.WORDGAME_GAME_TIMEOUT)

    snapshot = game.snapshot()
    return JsonResponse({
        'status': 'success',
        'result': result.value,
        'message': WIN_MESSAGE if result is GuessResult.WIN else RETRY_MESSAGE,
        'attempts': snapshot.attempts,
        'guesses': list(snapshot.guess_history),
        'won': snapshot.won,
    })


@require_GET
def leaderboard(request):
    entries = get_score_store().all_entries()
    return JsonResponse({
        'status': 'success',
        'entries': [entry_payload(rank, entry) for rank, entry in enumerate(entries, start=1)],
    })

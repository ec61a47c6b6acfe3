# wordgame/words.py

DIFFICULTY_CHOICES = [
    ('Easy', 'Easy (Weekdays)'),
    ('Medium', 'Medium (Fruits)'),
    ('Hard', 'Hard (Car Brands)'),
]
DEFAULT_DIFFICULTY = 'Easy'

LEVELS = {
    'Easy': 1,
    'Medium': 2,
    'Hard': 3,
}

LEVEL_NAMES = {
    1: 'Weekdays',
    2: 'Fruits',
    3: 'Car Brands',
}

WORDS = {
    1: ['MONDAY', 'TUESDAY', 'WEDNESDAY', 'THURSDAY', 'FRIDAY', 'SATURDAY', 'SUNDAY'],
    2: ['APPLE', 'MANGO', 'GRAPE', 'LEMON', 'GUAVA'],
    3: ['HONDA', 'TOYOTA', 'AUDI', 'TESLA', 'NISSAN'],
}
FALLBACK_WORDS = ['APPLE']


def level_for(difficulty):
    """Номер уровня для названия сложности; неизвестное название считается Easy."""
    return LEVELS.get(difficulty, 1)


def word_list(level):
    return list(WORDS.get(level, FALLBACK_WORDS))


def level_name(level):
    return LEVEL_NAMES.get(level, '')

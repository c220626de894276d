# ledger/codes.py
import secrets
import string
from typing import Callable

from ledger.exceptions import GenerationExhaustedError

INVITE_CODE_ALPHABET = string.ascii_uppercase
INVITE_CODE_LENGTH = 6

NAME_PREFIXES = [
    'Alex', 'Ben', 'Chris', 'Dan', 'Ed', 'Finn', 'Gus', 'Hank', 'Ian', 'Jack',
    'Kai', 'Leo', 'Max', 'Nick', 'Owen', 'Paul', 'Quinn', 'Ray', 'Sam', 'Tom',
    'Vic', 'Will', 'Zack', 'Ace', 'Blake', 'Cole', 'Drew', 'Evan', 'Felix', 'Gabe',
    'Hugo', 'Ivan', 'Jake', 'Kyle', 'Luke', 'Miles', 'Noah', 'Oscar', 'Pete',
    'Ryan', 'Sean', 'Troy', 'Vince', 'Wade', 'Xavi', 'Yuki', 'Zane',
]
NAME_SUFFIXES = [
    'son', 'ton', 'ley', 'man', 'er', 'an', 'in', 'on', 'en', 'ar',
    'or', 'ic', 'al', 'el', 'ie', 'ey', 'ay', 'oy', 'ly', 'ry',
]
MAX_NAME_LENGTH = 8


def generate_invite_code(length: int = INVITE_CODE_LENGTH, alphabet: str = INVITE_CODE_ALPHABET) -> str:
    return ''.join(secrets.choice(alphabet) for _ in range(length))


def generate_unique_invite_code(exists: Callable[[str], bool], max_attempts: int = 10,
                                length: int = INVITE_CODE_LENGTH,
                                alphabet: str = INVITE_CODE_ALPHABET) -> str:
    """
    Draw random codes until `exists(code)` is False.
    Raises GenerationExhaustedError after `max_attempts` collisions.
    """
    for _ in range(max_attempts):
        code = generate_invite_code(length, alphabet)
        if not exists(code):
            return code
    raise GenerationExhaustedError("Unable to generate a unique invite code, please retry")


def generate_random_name() -> str:
    """A short display name: either a plain prefix or prefix+suffix up to 8 letters."""
    prefix = secrets.choice(NAME_PREFIXES)
    if secrets.randbelow(2):
        return prefix
    combined = prefix + secrets.choice(NAME_SUFFIXES)
    return combined if len(combined) <= MAX_NAME_LENGTH else prefix


def generate_unique_random_name(exists: Callable[[str], bool], max_attempts: int = 20) -> str:
    for _ in range(max_attempts):
        name = generate_random_name()
        if not exists(name):
            return name
    # every candidate collided; fall back to a numeric suffix
    return f"{generate_random_name()}{secrets.randbelow(1000)}"

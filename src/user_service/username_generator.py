"""Generates unique hyphenated usernames such as ``swift-falcon-4821``."""

import logging
import random
import re
from typing import Tuple

from sqlalchemy.exc import SQLAlchemyError

from audiobook_shared.database import session_scope
from user_service.models import UserProfile

logger = logging.getLogger(__name__)

ADJECTIVES = [
    'happy', 'bright', 'swift', 'clever', 'brave', 'calm', 'cool', 'wild',
    'gentle', 'strong', 'wise', 'bold', 'kind', 'free', 'pure', 'true',
    'quick', 'sharp', 'smooth', 'solid', 'fresh', 'clear', 'deep', 'high',
]

NOUNS = [
    'tiger', 'eagle', 'wolf', 'bear', 'fox', 'lion', 'deer', 'hawk',
    'falcon', 'raven', 'owl', 'dove', 'swan', 'fish', 'star', 'moon',
    'river', 'mountain', 'forest', 'ocean', 'storm', 'wind', 'fire', 'ice',
]

USERNAME_PATTERN = re.compile(r'^[a-z]+(-[a-z0-9]+)*$')


class UsernameGenerator:

    def __init__(self, session_factory, rng: random.Random = None):
        self.session_factory = session_factory
        self.rng = rng or random.Random()

    def generate_unique_username(
        self,
        word_count: int = 2,
        number_count: int = 4,
        max_retries: int = 10
    ) -> Tuple[str, int]:
        """Return ``(username, attempts)`` for a name not yet taken."""
        for attempt in range(1, max_retries + 1):
            username = self.generate_username(word_count, number_count)
            try:
                if self.is_username_unique(username):
                    return username, attempt
            except SQLAlchemyError as e:
                logger.warning(f"Error checking username uniqueness (attempt {attempt}): {e}")

        raise ValueError(f"Failed to generate unique username after {max_retries} attempts")

    def generate_username(self, word_count: int = 2, number_count: int = 4) -> str:
        adjective_count = (word_count + 1) // 2
        noun_count = word_count // 2

        words = [self.rng.choice(ADJECTIVES) for _ in range(adjective_count)]
        words += [self.rng.choice(NOUNS) for _ in range(noun_count)]
        digits = ''.join(str(self.rng.randint(0, 9)) for _ in range(number_count))

        return '-'.join(words + [digits])

    def is_username_unique(self, username: str) -> bool:
        with session_scope(self.session_factory) as session:
            existing = session.query(UserProfile.id).filter(UserProfile.username == username).first()
            return existing is None

    @staticmethod
    def is_valid_username(username: str) -> bool:
        return bool(USERNAME_PATTERN.match(username)) and 3 <= len(username) <= 50

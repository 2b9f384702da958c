"""
Configuration for User Service
"""
import os

from audiobook_shared.config import Config as BaseConfig


class Config(BaseConfig):
    # Username generation settings
    USERNAME_WORD_COUNT = int(os.getenv('USERNAME_WORD_COUNT', 2))
    USERNAME_NUMBER_COUNT = int(os.getenv('USERNAME_NUMBER_COUNT', 4))
    USERNAME_MAX_RETRIES = int(os.getenv('USERNAME_MAX_RETRIES', 10))

    # Worker settings
    POLL_INTERVAL = int(os.getenv('POLL_INTERVAL', 1))  # seconds

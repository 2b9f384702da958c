"""
Configuration for Transcoding Service
"""
import os

from audiobook_shared.config import Config as BaseConfig


def _parse_bitrates(raw):
    return [int(b) for b in raw.split(',') if b.strip()]


class Config(BaseConfig):
    # Target bitrates in kbps
    TRANSCODING_BITRATES = _parse_bitrates(os.getenv('TRANSCODING_BITRATES', '64,128,256'))
    DEFAULT_PRIORITY = os.getenv('DEFAULT_PRIORITY', 'normal')

"""Utility helpers shared across services."""

import logging

from flask import jsonify

from .config import Config

def json_response(payload: dict, status: int = 200):
    """Return a JSON response with given status."""
    return jsonify(payload), status

def setup_logging(config: Config = None):
    """Configure root logging for a service entrypoint."""
    config = config or Config()
    logging.basicConfig(
        level=getattr(logging, str(config.LOG_LEVEL).upper(), logging.INFO),
        format=config.LOG_FORMAT
    )

"""
config.py
~~~~~~~~~

Environment-driven settings and logging setup shared by the CLI and the
API server.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

# Network defaults of the digit recognizer
DEFAULT_INPUT_SIZE = 784
DEFAULT_HIDDEN_SIZE = 300
DEFAULT_OUTPUT_SIZE = 10
DEFAULT_LEARNING_RATE = 0.3

DEFAULT_WEIGHTS_FILE = 'weights.data'

NOISY_LOGGERS = [
    'socketio', 'engineio', 'engineio.server', 'socketio.server', 'werkzeug'
]


@dataclass
class Settings:
    """Runtime settings, read from the environment by ``load_settings``."""

    log_level: str = 'INFO'
    production: bool = False
    port: int = 8000
    model_dir: str = 'models'
    training_data: Optional[str] = None
    test_data: Optional[str] = None
    cleanup_days: int = 2


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def load_settings() -> Settings:
    """
    Build Settings from environment variables.

    Reads LOG_LEVEL, FLASK_ENV, PORT, MODEL_DIR, TRAINING_DATA, TEST_DATA
    and CLEANUP_DAYS.
    """
    return Settings(
        log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        production=os.getenv('FLASK_ENV') == 'production',
        port=_int_from_env('PORT', 8000),
        model_dir=os.getenv('MODEL_DIR', 'models'),
        training_data=os.getenv('TRAINING_DATA') or None,
        test_data=os.getenv('TEST_DATA') or None,
        cleanup_days=_int_from_env('CLEANUP_DAYS', 2),
    )


def configure_logging(settings: Optional[Settings] = None) -> None:
    """
    Set up logging based on environment.

    - In production: Show fewer logs (less noise) but keep important logs
    - In development: Show more detailed logs for debugging
    """
    if settings is None:
        settings = load_settings()
    log_level = getattr(logging, settings.log_level, logging.INFO)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # In production, silence noisy third-party logs but keep our logs visible
    if settings.production:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)
        logging.getLogger('feedforward').setLevel(logging.INFO)
    else:
        logging.getLogger('socketio').setLevel(logging.INFO)
        logging.getLogger('engineio').setLevel(logging.INFO)

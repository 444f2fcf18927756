import pathlib
import sys

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from interview_voice.config import get_settings  # noqa: E402
from interview_voice.services import voice_settings  # noqa: E402


@pytest.fixture(autouse=True)
def reset_singletons():
    """Drop cached settings so each test sees its own environment."""
    get_settings.cache_clear()
    voice_settings._instance = None
    yield
    get_settings.cache_clear()
    voice_settings._instance = None

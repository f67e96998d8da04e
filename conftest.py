"""
Root pytest configuration.

Makes the flat ``app/`` layout importable when pytest is started from the
repository root. App-specific fixtures live in each app's tests/conftest.py.
"""

import os
import sys
from pathlib import Path

APP_DIR = Path(__file__).resolve().parent / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

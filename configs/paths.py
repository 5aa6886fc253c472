"""
Project paths.

BASE_DIR is the repository root; LOG_FILE can be redirected with the
FOURBAR_LOG_FILE environment variable.
"""
from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

LOG_FILE = Path(os.environ.get('FOURBAR_LOG_FILE', BASE_DIR / 'fourbar.log'))

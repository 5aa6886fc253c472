"""
Pytest configuration - runs before test collection.

Adds project root to sys.path so local modules can be imported.
Configures logging for test output.
"""
from __future__ import annotations

import logging
import sys
import tempfile
from pathlib import Path

# Add project root to path for local module imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from configs.logging_config import setup_logging  # noqa: E402

# Configure logging for tests
# Default to INFO level - use pytest -s --log-cli-level=DEBUG for more verbose output
logging.basicConfig(
    level=logging.INFO,
    format='%(levelname)s - %(name)s - %(message)s',
    datefmt='%H:%M:%S',
)

# Atlas generation and optimizer loops are chatty at INFO; keep the log file out of the repo
setup_logging(
    level=logging.WARNING,
    log_file=Path(tempfile.gettempdir()) / 'fourbar-tests.log',
    console=False,
)

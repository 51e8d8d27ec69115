"""Test configuration: load the test config before any application module."""

import os
from pathlib import Path

os.environ.setdefault(
    "APP_CONFIG_FILE", str(Path(__file__).parent / "config.test.yaml")
)

from tests.fixtures import *  # noqa: E402,F401,F403

"""capflow - polling engine for capital-flow metrics of tracked instruments."""

__version__ = "0.1.0"
__author__ = "capflow Team"
__description__ = "Polls capital-flow metrics and publishes bounded per-instrument history"

__all__ = [
    "__version__",
    "__author__",
    "__description__",
]

# Load environment variables as early as possible
import os
from pathlib import Path

from dotenv import load_dotenv


def load_env_file_early() -> None:
    """Load environment variables from .env file at package import time.

    Looks for .env file in project root (two levels up from this file).

    Note:
        - Existing environment variables take precedence (override=False)
        - Debug output can be enabled via CAPFLOW_DEBUG=true
    """
    current_dir = Path(__file__).parent
    project_root = current_dir.parent.parent
    env_file = project_root / ".env"

    if env_file.exists():
        load_dotenv(env_file, override=False)

        if os.getenv("CAPFLOW_DEBUG", "false").lower() == "true":
            print(f"Environment variables loaded from {env_file}")
            print(f"  CAPFLOW_INSTRUMENTS: {os.environ.get('CAPFLOW_INSTRUMENTS', 'not set')}")
    elif os.getenv("CAPFLOW_DEBUG", "false").lower() == "true":
        print(f"No .env file found at {env_file}")


# Load environment variables immediately when package is imported
load_env_file_early()

"""
Environment variable loading utility

Supports layered environment variable loading:
1. Load .env (default/base configuration)
2. Load the file of the running environment (.env.test, .env.prod), which overrides .env
"""
import os
from pathlib import Path
from typing import Optional

import environ

ENV_FILE_BY_RUN_ENV = {
    "test": ".env.test",
    "prod": ".env.prod",
}


def load_env(base_dir: Path, run_env: Optional[str] = None) -> environ.Env:
    """
    Load environment variables with layered support

    Loading order:
    1. Load .env (base/default configuration)
    2. If RUN_ENV=test, load .env.test (overrides .env)
    3. If RUN_ENV=prod, load .env.prod (overrides .env)

    Args:
        base_dir: Base directory where .env files are located
        run_env: Running environment, read from RUN_ENV if omitted

    Returns:
        environ.Env instance with loaded environment variables
    """
    env_file = base_dir / ".env"
    if env_file.exists():
        environ.Env.read_env(env_file)

    if run_env is None:
        run_env = os.environ.get("RUN_ENV", "")

    layered_file_name = ENV_FILE_BY_RUN_ENV.get(run_env.lower())
    if layered_file_name:
        layered_file = base_dir / layered_file_name
        if layered_file.exists():
            environ.Env.read_env(layered_file, overwrite=True)

    return environ.Env()

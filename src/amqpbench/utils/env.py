import os
from typing import Optional

from dotenv import load_dotenv

ENV_LOADED = False


def load_env(env_file: Optional[str] = None) -> bool:
    """
    Load the env file named by `env_file` or by the ENV_FILE variable.

    Variables already present in the environment win over the file, so a
    container that injects AMQP_* directly is not overridden.
    Returns True when a file was loaded.
    """
    global ENV_LOADED
    if ENV_LOADED and env_file is None:
        return False

    env_file = env_file or os.environ.get("ENV_FILE")
    if not env_file:
        return False

    loaded = False
    if os.path.exists(env_file):
        loaded = load_dotenv(env_file, encoding="utf-8", override=False)

    ENV_LOADED = True
    return loaded

"""
Environment variable loader.

Reads a ``.env`` file from the working directory (or an explicit path)
with python-dotenv. Variables already set in the environment win.
"""
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv


def load_env(env_path: Optional[Union[str, Path]] = None) -> bool:
    """
    Load environment variables from a .env file.

    Args:
        env_path: Path to the .env file. Defaults to ``.env`` in the current directory.

    Returns:
        True if a file was found and loaded, False otherwise.
    """
    path = Path(env_path) if env_path is not None else Path.cwd() / ".env"
    if not path.is_file():
        return False
    return load_dotenv(dotenv_path=path, override=False)

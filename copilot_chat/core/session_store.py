"""
Session persistence.

One JSON file per working directory under the cache root, named after the
directory path with every non-alphanumeric byte percent-encoded. File
baselines are saved without their content.
"""

import logging
import os
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from copilot_chat.config import settings
from copilot_chat.core.error_handlers import PersistenceError
from copilot_chat.models.chat import ChatSession

logger = logging.getLogger(__name__)

_ALNUM = frozenset("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789")


def encode_session_key(cwd: Union[str, Path]) -> str:
    """Percent-encode every byte of the path that is not ASCII alphanumeric."""
    return "".join(
        chr(byte) if chr(byte) in _ALNUM else f"%{byte:02X}"
        for byte in str(cwd).encode("utf-8")
    )


class SessionStore:
    """Loads, saves and removes the chat saved for a working directory."""

    def __init__(self, cache_root: Optional[Union[str, Path]] = None):
        self.cache_root = Path(cache_root or settings.cache_dir)

    def path_for(self, cwd: Optional[Union[str, Path]] = None) -> Path:
        """Cache file of ``cwd`` (the current directory when None)."""
        cwd = cwd if cwd is not None else os.getcwd()
        return self.cache_root / f"{encode_session_key(cwd)}.json"

    def load(self, cwd: Optional[Union[str, Path]] = None) -> Optional[ChatSession]:
        """
        Load the saved chat of a directory.

        Returns:
            The session, or None when nothing was saved

        Raises:
            PersistenceError: If the file cannot be read or parsed
        """
        cache_file = self.path_for(cwd)
        if not cache_file.exists():
            return None

        try:
            raw = cache_file.read_text(encoding="utf-8")
            session = ChatSession.model_validate_json(raw)
        except (OSError, ValidationError) as e:
            raise PersistenceError(str(cache_file), str(e)) from e

        logger.info(
            "Chat loaded",
            extra={"event": "session_loaded", "file_path": str(cache_file)},
        )
        return session

    def save(self, session: ChatSession, cwd: Optional[Union[str, Path]] = None) -> Path:
        """
        Save a chat for a directory, replacing any previous one.

        Raises:
            PersistenceError: If the file cannot be written
        """
        cache_file = self.path_for(cwd)
        tmp_file = cache_file.with_suffix(".json.tmp")
        try:
            self.cache_root.mkdir(parents=True, exist_ok=True)
            tmp_file.write_text(session.model_dump_json(), encoding="utf-8")
            tmp_file.replace(cache_file)
        except OSError as e:
            raise PersistenceError(str(cache_file), str(e)) from e

        logger.info(
            "Chat saved successfully",
            extra={"event": "session_saved", "file_path": str(cache_file)},
        )
        return cache_file

    def remove(self, cwd: Optional[Union[str, Path]] = None) -> bool:
        """
        Delete the saved chat of a directory.

        Returns:
            True if a file was deleted, False if none existed

        Raises:
            PersistenceError: If the file exists but cannot be deleted
        """
        cache_file = self.path_for(cwd)
        try:
            cache_file.unlink()
        except FileNotFoundError:
            logger.info("Chat not found; skipping deletion.")
            return False
        except OSError as e:
            raise PersistenceError(str(cache_file), str(e)) from e

        logger.info("Chat deleted successfully")
        return True

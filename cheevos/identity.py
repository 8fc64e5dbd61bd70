"""
Game Identity Resolver.

Derives the hash the server uses to recognise a game: MD5 over the
executable's normalized file name followed by (up to 64 MiB of) the
executable's bytes, rendered as lowercase hex.

Image access goes through a byte reader that returns either the bytes or a
ReadError value; readers never raise across this boundary.
"""

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .config import MAX_HASH_SIZE
from .exceptions import IdentityError

logger = logging.getLogger(__name__)

PATH_SEPARATORS = ("\\", "/")
VERSION_SEPARATOR = ";"


@dataclass(frozen=True)
class ReadError:
    """Failure result of a byte reader."""
    path: str
    reason: str


ReadResult = Union[bytes, ReadError]


class FileByteReader:
    """
    Reads executables from the host filesystem.

    Paths are resolved relative to root when given, so emulator-style
    paths such as "cdrom0:\\SLUS_209.46;1" can be mapped onto an extracted
    disc directory by a subclass overriding resolve().
    """

    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root) if root is not None else None

    def resolve(self, path: str) -> Path:
        p = Path(path)
        if self.root is not None and not p.is_absolute():
            p = self.root / p
        return p

    def read(self, path: str, max_size: int = MAX_HASH_SIZE) -> ReadResult:
        target = self.resolve(path)
        try:
            size = target.stat().st_size
            wanted = min(size, max_size)
            with open(target, "rb") as f:
                data = f.read(wanted)
        except OSError as e:
            return ReadError(path, str(e))

        if len(data) != wanted:
            return ReadError(path, f"only read {len(data)} of {wanted} bytes")
        return data


def name_for_hash(path: str) -> str:
    """
    Normalize an executable path to the name that is fed into the hash.

    Strips everything up to the last path separator, then truncates at the
    first version separator. Idempotent.
    """
    start = max(path.rfind(sep) for sep in PATH_SEPARATORS) + 1
    name = path[start:]
    end = name.find(VERSION_SEPARATOR)
    if end >= 0:
        name = name[:end]
    return name


def compute_game_hash(path: str, reader, max_size: int = MAX_HASH_SIZE) -> str:
    """
    Compute the identity hash for the executable at path.

    Args:
        path: Executable path as recorded by the emulator
        reader: Byte reader with read(path, max_size) -> bytes | ReadError
        max_size: Maximum number of executable bytes fed into the digest

    Returns:
        32-character lowercase hex digest

    Raises:
        IdentityError: empty name or unreadable executable
    """
    name = name_for_hash(path)
    if not name:
        raise IdentityError(f"No usable executable name in '{path}'")

    result = reader.read(path, max_size)
    if isinstance(result, ReadError):
        raise IdentityError(f"Failed to read executable '{result.path}': {result.reason}")

    data = result[:max_size]
    digest = hashlib.md5()
    digest.update(name.encode("utf-8"))
    if data:
        digest.update(data)
    game_hash = digest.hexdigest()

    logger.info(
        f"Hash for '{name}' ({len(result)} bytes, {len(data)} bytes hashed): {game_hash}"
    )
    return game_hash


class GameIdentityResolver:
    """
    Caches the last identified game so repeated "game changed" notifications
    for the same content do not re-read and re-hash the executable.
    """

    def __init__(self, reader, max_size: int = MAX_HASH_SIZE):
        self.reader = reader
        self.max_size = max_size
        self.last_crc = 0
        self.game_hash = ""
        self.computations = 0

    def crc_unchanged(self, crc: int) -> bool:
        return crc == self.last_crc

    def resolve(self, path: str) -> str:
        """
        Hash the executable after the content checksum changed.

        Returns the hash, or "" when the game cannot be identified (the
        failure is logged). Callers compare the result to the previous
        game_hash to detect a real change.
        """
        self.computations += 1
        if not path:
            return ""
        try:
            return compute_game_hash(path, self.reader, self.max_size)
        except IdentityError as e:
            logger.error(f"{e}")
            return ""

    def remember(self, crc: int, game_hash: str):
        self.last_crc = crc
        self.game_hash = game_hash

    def clear(self):
        self.last_crc = 0
        self.game_hash = ""

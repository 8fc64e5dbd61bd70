"""
Save-State Codec - carries in-flight trigger progress inside emulator save
states.

Progress is opaque runtime data. It is stored in a trailing slot of the save
state container so that the emulator's own state stays byte-for-byte what
the core produced:

    [emulator state][progress][footer]

    footer = magic (4s) | version (H) | emulator length (I) | progress length (I)

A container without a valid footer is an older save (or one made with
achievements off) and simply has no progress.
"""

import logging
import struct

from ..exceptions import EngineError

logger = logging.getLogger(__name__)

STATE_MAGIC = b"CHVS"
STATE_VERSION = 1
_FOOTER = struct.Struct("<4sHII")


class SaveStateCodec:
    """Serializes and restores runtime progress."""

    def __init__(self, runtime):
        self.runtime = runtime

    def serialize(self) -> bytes:
        """
        Snapshot trigger progress.

        Returns b"" (no progress data) if the runtime reports any error, never
        a partially filled buffer.
        """
        try:
            size = self.runtime.progress_size()
            buffer = bytearray(size)
            self.runtime.serialize_progress(buffer)
        except EngineError as e:
            logger.error(f"Failed to serialize achievement progress: {e}")
            return b""
        return bytes(buffer)

    def deserialize(self, data: bytes) -> None:
        """
        Restore trigger progress. Empty data resets all progress; data the
        runtime rejects is logged and also resets.
        """
        if not data:
            logger.warning("State is missing achievement progress, resetting runtime")
            self.runtime.reset()
            return
        try:
            self.runtime.deserialize_progress(data)
        except EngineError as e:
            logger.warning(f"Failed to restore achievement progress, resetting runtime: {e}")
            self.runtime.reset()


# =============================================================================
# Container Slot
# =============================================================================

def pack_state(emulator_state: bytes, progress: bytes) -> bytes:
    footer = _FOOTER.pack(STATE_MAGIC, STATE_VERSION, len(emulator_state), len(progress))
    return bytes(emulator_state) + bytes(progress) + footer


def unpack_state(container: bytes) -> tuple[bytes, bytes]:
    """
    Split a save-state container into (emulator state, progress).

    The embedded lengths must add up to the container size exactly; anything
    else is treated as a plain emulator state with no progress.
    """
    if len(container) < _FOOTER.size:
        return bytes(container), b""

    magic, version, emulator_length, progress_length = _FOOTER.unpack_from(
        container, len(container) - _FOOTER.size
    )
    if magic != STATE_MAGIC:
        return bytes(container), b""

    if emulator_length + progress_length + _FOOTER.size != len(container):
        logger.warning(
            f"Save state footer claims {emulator_length}+{progress_length} bytes "
            f"but container holds {len(container) - _FOOTER.size}; ignoring progress"
        )
        return bytes(container), b""

    emulator_state = bytes(container[:emulator_length])
    if version != STATE_VERSION:
        logger.warning(f"Unsupported achievement progress version {version}; ignoring progress")
        return emulator_state, b""

    return emulator_state, bytes(container[emulator_length:emulator_length + progress_length])

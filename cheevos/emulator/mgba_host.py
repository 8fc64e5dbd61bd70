"""
mGBA Host - runs a GBA ROM in an embedded mGBA core with achievements.

Wires the achievements engine into the emulator the way a frontend does:
the engine sees emulated memory through MgbaMemory, hashes the loaded ROM
through RomFileReader, gets do_frame() after every emulated frame, and has
its trigger progress stored inside save-state files.

Running a ROM needs the `emulator` extra, i.e. the mgba bindings from an
mGBA build with Python support enabled. They are imported on connect(),
so the memory and save-state glue below works without them. Save-state
slots go to a `states/` directory beside the ROM unless one is given.
"""

import logging
import zlib
from pathlib import Path
from typing import Optional

from ..identity import FileByteReader, ReadError, ReadResult
from ..runtime.memory import GBA_WINDOW, in_window, map_address
from ..tracking.savestate import pack_state, unpack_state

logger = logging.getLogger(__name__)

MAX_SLOT = 10


class MgbaMemory:
    """Achievement memory window over the core's IWRAM and EWRAM."""

    window = GBA_WINDOW

    def __init__(self, core=None):
        self.core = core

    def _views(self):
        memory = self.core.memory
        return {1: memory.u8, 2: memory.u16, 4: memory.u32}

    def peek(self, address: int, size: int) -> int:
        if self.core is None or not in_window(address, size, self.window):
            return 0
        real = map_address(address, size)
        if real is None:
            return 0
        try:
            return self._views()[size][real]
        except (IndexError, KeyError) as e:
            logger.debug(f"peek{size * 8} failed at 0x{real:08X}: {e}")
            return 0

    def poke(self, address: int, size: int, value: int) -> None:
        if self.core is None or not in_window(address, size, self.window):
            return
        real = map_address(address, size)
        if real is None:
            return
        try:
            self._views()[size][real] = value & ((1 << (size * 8)) - 1)
        except (IndexError, KeyError) as e:
            logger.error(f"poke{size * 8} failed at 0x{real:08X}: {e}")


class RomFileReader(FileByteReader):
    """Byte reader that serves the loaded ROM from memory."""

    def __init__(self, rom_path: str):
        super().__init__()
        self.rom_path = str(rom_path)
        self._data: Optional[bytes] = None

    def load(self) -> ReadResult:
        if self._data is None:
            try:
                self._data = Path(self.rom_path).read_bytes()
            except OSError as e:
                return ReadError(self.rom_path, str(e))
        return self._data

    def read(self, path: str, max_size: int) -> ReadResult:
        if path != self.rom_path:
            return super().read(path, max_size)
        result = self.load()
        if isinstance(result, ReadError):
            return result
        return result[:max_size]

    def crc(self) -> int:
        result = self.load()
        if isinstance(result, ReadError):
            return 0
        return zlib.crc32(result)


class MgbaSession:
    """Embedded mGBA core driving an achievements engine."""

    def __init__(self, rom_path: str, achievements, memory: MgbaMemory, reader: RomFileReader,
                 state_dir: Optional[Path] = None):
        self.rom_path = str(rom_path)
        self.achievements = achievements
        self.memory = memory
        self.reader = reader
        self.state_dir = Path(state_dir) if state_dir else Path(self.rom_path).parent / "states"
        self._core = None
        self._screen = None
        self._frame_count = 0

    def connect(self) -> bool:
        """Load the ROM, reset the core and tell the engine which game is running."""
        try:
            import mgba.core
            import mgba.image

            if not Path(self.rom_path).exists():
                logger.error(f"ROM not found: {self.rom_path}")
                return False

            self._core = mgba.core.load_path(self.rom_path)
            if self._core is None:
                logger.error(f"Failed to load ROM: {self.rom_path}")
                return False

            width, height = self._core.desired_video_dimensions()
            self._screen = mgba.image.Image(width, height)
            self._core.set_video_buffer(self._screen)
            self._core.autoload_save()
            self._core.reset()
        except Exception as e:
            logger.error(f"Connection failed: {e}")
            self._core = None
            return False

        self.memory.core = self._core
        self._frame_count = 0
        title = self._core.game_title.strip('\x00').strip()
        logger.info(f"Loaded {title} from {self.rom_path}")

        self.achievements.game_changed(self.reader.crc(), self.rom_path)
        return True

    def is_connected(self) -> bool:
        return self._core is not None

    def close(self) -> None:
        if self._core is not None:
            self.achievements.game_stopped()
        self.memory.core = None
        self._core = None
        self._screen = None

    # -------------------------------------------------------------------------
    # Frames
    # -------------------------------------------------------------------------

    def run_frames(self, n: int = 1) -> None:
        for _ in range(n):
            self._core.run_frame()
            self._frame_count += 1
            self.achievements.do_frame()

    @property
    def frame_count(self) -> int:
        return self._frame_count

    def reset(self) -> None:
        if not self.is_connected():
            return
        self._core.reset()
        self.achievements.reset()

    # -------------------------------------------------------------------------
    # State Management
    # -------------------------------------------------------------------------

    def _state_path(self, slot: int) -> Path:
        return self.state_dir / f"{Path(self.rom_path).stem}_slot{slot}.state"

    def save_state(self, slot: int) -> bool:
        """Save emulator state plus achievement progress (slot 1-10)."""
        if not 1 <= slot <= MAX_SLOT:
            raise ValueError(f"Slot must be 1-{MAX_SLOT}, got {slot}")
        if not self.is_connected():
            return False
        try:
            state = self._core.save_raw_state()
            if state is None:
                logger.error("Failed to save state")
                return False
            container = pack_state(bytes(state), self.achievements.save_state())
            self.state_dir.mkdir(parents=True, exist_ok=True)
            state_path = self._state_path(slot)
            state_path.write_bytes(container)
            logger.info(f"State saved to slot {slot}: {state_path}")
            return True
        except OSError as e:
            logger.error(f"save_state failed for slot {slot}: {e}")
            return False

    def load_state(self, slot: int) -> bool:
        """Load a state file; older files without achievement progress reset it."""
        if not 1 <= slot <= MAX_SLOT:
            raise ValueError(f"Slot must be 1-{MAX_SLOT}, got {slot}")
        if not self.is_connected():
            return False
        state_path = self._state_path(slot)
        if not state_path.exists():
            logger.error(f"No state file for slot {slot}: {state_path}")
            return False
        try:
            emulator_state, progress = unpack_state(state_path.read_bytes())
        except OSError as e:
            logger.error(f"load_state failed for slot {slot}: {e}")
            return False

        if not self._core.load_raw_state(emulator_state):
            logger.error(f"Core rejected state from slot {slot}")
            return False
        self.achievements.load_state(progress)
        logger.info(f"State loaded from slot {slot}")
        return True

    def __enter__(self) -> "MgbaSession":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

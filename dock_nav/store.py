"""Durable data for navigation runs: recipes and per-robot docking offsets.

A ``DataStore`` is constructed explicitly with its root directory and handed to
whatever needs it; there is no process-wide store.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Union

from .config import DOCKING_OFFSETS_FILE, RECIPE_SUFFIX


@dataclass(frozen=True)
class DockingOffsets:
    """Manual per-robot corrections applied during docking.

    Attributes:
        charger_y_offset: Extra lateral camera offset (meters, positive = right).
        head_yaw_offset: Head yaw correction (degrees).
        head_roll_offset: Head roll correction (degrees).
    """

    charger_y_offset: float = 0.0
    head_yaw_offset: float = 0.0
    head_roll_offset: float = 0.0

    @classmethod
    def parse(cls, text: str) -> "DockingOffsets":
        """Parse ``name = value`` lines. Unknown names and bad values are skipped.

        Example:
            >>> DockingOffsets.parse("charger y offset = 0.01\\nhead yaw offset = -2")
            DockingOffsets(charger_y_offset=0.01, head_yaw_offset=-2.0, head_roll_offset=0.0)
        """
        fields = {
            "charger y offset": "charger_y_offset",
            "head yaw offset": "head_yaw_offset",
            "head roll offset": "head_roll_offset",
        }
        values = {}
        for line in text.splitlines():
            name, sep, value = line.partition("=")
            key = fields.get(name.strip().lower())
            if not sep or key is None:
                continue
            try:
                values[key] = float(value.strip())
            except ValueError:
                logging.warning(f"Ignoring docking offset line: {line.strip()!r}")
        return cls(**values)


class DataStore:
    """File-backed store rooted at a data directory.

    Attributes:
        root: Directory holding recipes and the docking offsets file.
    """

    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root)
        if self.root.exists() and not self.root.is_dir():
            raise ValueError(f"Data store path exists but is not a directory: {root}")

    def recipe_path(self, name: str) -> Path:
        path = self.root / name
        if not path.suffix:
            path = path.with_suffix(RECIPE_SUFFIX)
        return path

    def load_recipe_text(self, name: str) -> str:
        """Read a recipe by name.

        Raises:
            FileNotFoundError: If the recipe does not exist.
        """
        path = self.recipe_path(name)
        if not path.exists():
            raise FileNotFoundError(f"Recipe not found: {path}")
        return path.read_text()

    def list_recipes(self) -> List[str]:
        if not self.root.exists():
            return []
        return sorted(
            p.stem for p in self.root.glob(f"*{RECIPE_SUFFIX}") if p.name != DOCKING_OFFSETS_FILE
        )

    def load_docking_offsets(self) -> DockingOffsets:
        """Load per-robot docking offsets, falling back to zeros when absent."""
        path = self.root / DOCKING_OFFSETS_FILE
        if not path.exists():
            logging.info("No docking offsets file present.")
            return DockingOffsets()
        offsets = DockingOffsets.parse(path.read_text())
        logging.info(
            f"Docking offsets: charger y {offsets.charger_y_offset:.3f}m, "
            f"head yaw {offsets.head_yaw_offset:.1f}°, head roll {offsets.head_roll_offset:.1f}°"
        )
        return offsets

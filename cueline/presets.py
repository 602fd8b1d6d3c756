"""Named settings presets persisted to a local JSON file.

WHY: Speakers switch between rooms and cameras and want their speed, font
size, and margins back with one click. Presets are the only durable state
Cue Line keeps.

HOW: PresetStore reads the whole file on construction and rewrites it on
every save/delete. Each preset gets a uuid4 id. Values are validated with
the same slider ranges the session uses.

RULES:
- Blank names and out-of-range values raise ValidationError
- search() is a case-insensitive substring match on the name
- An unreadable or corrupt file is logged and treated as empty
- Writes go to a temporary file first and replace the target atomically
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from cueline.config import PRESET_FIELDS, PRESETS_PATH
from cueline.core.state import validate_setting
from cueline.errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Preset:
    id: str
    name: str
    scroll_speed: int
    font_size: int
    horizontal_margin: int
    vertical_margin: int

    def settings(self) -> Dict[str, int]:
        return {name: getattr(self, name) for name in PRESET_FIELDS}

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class PresetStore:
    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path or PRESETS_PATH)
        self._presets: List[Preset] = self._load()

    def _load(self) -> List[Preset]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            return [Preset(**item) for item in raw]
        except (OSError, ValueError, TypeError) as exc:
            logger.warning("Ignoring unreadable preset file %s: %s", self.path, exc)
            return []

    def _write(self, presets: List[Preset]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(
            json.dumps([p.to_dict() for p in presets], indent=2),
            encoding="utf-8",
        )
        os.replace(tmp, self.path)

    def list(self) -> List[Preset]:
        return list(self._presets)

    def get(self, preset_id: str) -> Optional[Preset]:
        for preset in self._presets:
            if preset.id == preset_id:
                return preset
        return None

    def save(self, name: str, settings: Dict[str, Any]) -> Preset:
        """Validate and persist a new preset built from ``settings``."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Please enter a name for your preset.")
        missing = [f for f in PRESET_FIELDS if f not in settings]
        if missing:
            raise ValidationError("Preset is missing: {}".format(", ".join(missing)))
        values = {f: validate_setting(f, settings[f]) for f in PRESET_FIELDS}

        preset = Preset(id=str(uuid.uuid4()), name=name, **values)
        updated = self._presets + [preset]
        self._write(updated)
        self._presets = updated
        logger.info("Saved preset %r (%s)", name, preset.id)
        return preset

    def delete(self, preset_id: str) -> bool:
        remaining = [p for p in self._presets if p.id != preset_id]
        if len(remaining) == len(self._presets):
            return False
        self._write(remaining)
        self._presets = remaining
        return True

    def search(self, term: str) -> List[Preset]:
        needle = (term or "").strip().lower()
        if not needle:
            return self.list()
        return [p for p in self._presets if needle in p.name.lower()]

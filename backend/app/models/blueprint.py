"""
Cathedral Build Engine - Blueprint Definition

Static, read-only description of the build project: an ordered list of
costed segments. Loaded once per process and cached; never mutated.
"""

from __future__ import annotations
import json
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional, Tuple


DEFAULT_BLUEPRINT_PATH = Path(__file__).resolve().parent.parent / "blueprints" / "cathedral_cologne_v1.json"


class BlueprintError(ValueError):
    """Raised when a blueprint file is malformed."""


@dataclass(frozen=True)
class BlueprintSegment:
    """One named, costed unit of the build."""
    key: str
    label: str
    cost: int
    phase: str
    order: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "label": self.label,
            "cost": self.cost,
            "phase": self.phase,
            "order": self.order,
        }


@dataclass(frozen=True)
class Blueprint:
    """Immutable blueprint. Segments are always sorted by order."""
    id: str
    name: str
    segments: Tuple[BlueprintSegment, ...]
    asset: Optional[str] = None
    units: Optional[str] = None

    @property
    def total_cost(self) -> int:
        return sum(seg.cost for seg in self.segments)

    def segment(self, key: str) -> Optional[BlueprintSegment]:
        for seg in self.segments:
            if seg.key == key:
                return seg
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "asset": self.asset,
            "units": self.units,
            "total_cost": self.total_cost,
            "segments": [seg.to_dict() for seg in self.segments],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Blueprint":
        """
        Build a Blueprint from its JSON form.

        Sorts segments by order and rejects non-positive costs and
        duplicate keys.
        """
        try:
            raw_segments = data["segments"]
            segments = [
                BlueprintSegment(
                    key=str(seg["key"]),
                    label=str(seg.get("label", seg["key"])),
                    cost=int(seg["cost"]),
                    phase=str(seg.get("phase", "")),
                    order=int(seg["order"]),
                )
                for seg in raw_segments
            ]
            blueprint_id = str(data["id"])
        except (KeyError, TypeError, ValueError) as e:
            raise BlueprintError(f"Malformed blueprint: {e}") from e

        seen = set()
        for seg in segments:
            if seg.cost <= 0:
                raise BlueprintError(f"Segment '{seg.key}' must have a positive cost")
            if seg.key in seen:
                raise BlueprintError(f"Duplicate segment key '{seg.key}'")
            seen.add(seg.key)

        segments.sort(key=lambda s: s.order)

        return cls(
            id=blueprint_id,
            name=str(data.get("name", blueprint_id)),
            segments=tuple(segments),
            asset=data.get("asset"),
            units=data.get("units"),
        )


@lru_cache(maxsize=1)
def load_blueprint() -> Blueprint:
    """
    Load the active blueprint.

    Reads BLUEPRINT_PATH (or the packaged cathedral blueprint) once per
    process. Tests reset it with load_blueprint.cache_clear().
    """
    path = Path(os.getenv("BLUEPRINT_PATH", str(DEFAULT_BLUEPRINT_PATH)))
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    return Blueprint.from_dict(data)

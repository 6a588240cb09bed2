"""Feature to cabinet (disk id) mapping."""

from __future__ import annotations

import re
from dataclasses import dataclass

from filelib.config import DEFAULT_CABINET_KEY, CabinetConfig

_SEPARATORS = re.compile(r"[,;]")


@dataclass(slots=True, frozen=True)
class CabinetMapping:
    """Either a single cabinet index, or indexes split by file-name divisions."""

    index: int = 0
    indexes: tuple[int, ...] = ()
    divisions: tuple[str, ...] = ()

    @classmethod
    def parse(cls, index: str = "", indexes: str = "", divisions: str = "") -> CabinetMapping:
        """Validate raw configuration values and build a mapping."""
        raw_index = index.strip()
        raw_indexes = indexes.strip()
        raw_divisions = divisions.strip()

        if not raw_index:
            if not raw_indexes or not raw_divisions:
                raise ValueError(
                    "Invalid cabinet assignment: when 'index' is not assigned, "
                    "both 'indexes' and 'divisions' must be assigned."
                )
            parsed_indexes = tuple(_parse_index(part) for part in _SEPARATORS.split(raw_indexes))
            parsed_divisions = tuple(part.lower() for part in _SEPARATORS.split(raw_divisions))
            if len(parsed_indexes) != len(parsed_divisions) + 1:
                raise ValueError(
                    f"Invalid cabinet assignment: indexes={raw_indexes!r} divisions={raw_divisions!r} "
                    "is wrong because there must be one more index than division."
                )
            return cls(indexes=parsed_indexes, divisions=parsed_divisions)

        if raw_indexes or raw_divisions:
            raise ValueError(
                "Invalid cabinet assignment: when 'index' is assigned, "
                "neither 'indexes' nor 'divisions' may be assigned."
            )
        return cls(index=_parse_index(raw_index))

    def cabinet_for(self, file_name: str) -> int:
        """Return the cabinet index for a file name."""
        if self.index != 0:
            return self.index
        lowered = file_name.lower()
        for position, division in enumerate(self.divisions):
            if lowered < division:
                return self.indexes[position]
        return self.indexes[-1]


def _parse_index(raw: str) -> int:
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise ValueError(f"Invalid cabinet assignment: '{raw}' is not an integer index.") from exc
    if value < 1:
        raise ValueError(f"Invalid cabinet assignment: index {value} must be positive.")
    return value


def build_cabinet_mappings(cabinets: dict[str, CabinetConfig]) -> dict[str, CabinetMapping]:
    """Parse every configured assignment; a default entry is mandatory."""
    if DEFAULT_CABINET_KEY not in cabinets:
        raise ValueError(f"Cabinet assignments must define a '{DEFAULT_CABINET_KEY}' entry.")
    return {
        feature: CabinetMapping.parse(entry.index, entry.indexes, entry.divisions)
        for feature, entry in cabinets.items()
    }


def disk_id_for(
    file_name: str, features: list[str], mappings: dict[str, CabinetMapping]
) -> int:
    """Cabinet for a file, keyed on its first feature with the default as fallback."""
    if features and features[0] in mappings:
        return mappings[features[0]].cabinet_for(file_name)
    return mappings[DEFAULT_CABINET_KEY].cabinet_for(file_name)

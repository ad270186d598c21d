"""
Rudiment Catalog: static practice reference data.

Provides:
- The built-in set of rudiments (id, name, tier, sticking, 16th-note chart)
- The scoring rubric shared by every rudiment
- Optional loading of a replacement catalog from a JSON file

Catalog data is immutable: it is built once at startup and injected into the
scheduler and CLI.
"""

from __future__ import annotations

import json
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from .errors import CatalogError, UnknownRudiment

TIERS = (1, 2, 3, 4)
CHART_LABELS = ("1", "e", "&", "a", "2", "e", "&", "a")


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class Rudiment:
    """A named drumming pattern with a curriculum tier."""

    id: str
    name: str
    tier: int
    sticking: str
    chart: str

    @classmethod
    def from_dict(cls, data: dict) -> Rudiment:
        """
        Create a Rudiment from a dictionary (JSON).

        ``chart`` may be given either as a pre-rendered string or as a list of
        up to eight sticking tokens, which is rendered with chart16().

        Raises:
            CatalogError: if a required field is missing or the tier is invalid
        """
        try:
            rudiment_id = str(data["id"])
            name = str(data["name"])
            tier = int(data["tier"])
        except (KeyError, TypeError, ValueError) as exc:
            raise CatalogError(f"Invalid rudiment entry {data!r}: {exc}") from exc

        if tier not in TIERS:
            raise CatalogError(f"Rudiment {rudiment_id!r} has tier {tier}, expected one of {TIERS}")

        chart = data.get("chart", [])
        if isinstance(chart, list):
            chart = chart16([str(token) for token in chart])

        return cls(
            id=rudiment_id,
            name=name,
            tier=tier,
            sticking=str(data.get("sticking", "")),
            chart=str(chart),
        )


@dataclass(frozen=True)
class RubricCriterion:
    """One self-rating criterion and its weight in the rep score."""

    id: str
    name: str
    weight: float


# =============================================================================
# Built-in Data
# =============================================================================


def chart16(tokens: Sequence[str]) -> str:
    """
    Render eight 16th-note slots as a one-line ASCII chart.

    >>> chart16(["R", "L"])[:12]
    '1 :R    e :L'
    """
    cells = []
    for i, label in enumerate(CHART_LABELS):
        token = tokens[i] if i < len(tokens) else "-"
        cells.append(f"{label.ljust(2)}:{token.ljust(3)}")
    return "  ".join(cells)


RUDIMENTS: tuple[Rudiment, ...] = (
    Rudiment("single-stroke-roll", "Single Stroke Roll", 1, "R L R L R L R L",
             chart16(["R", "L", "R", "L", "R", "L", "R", "L"])),
    Rudiment("double-stroke-roll", "Double Stroke Roll", 1, "R R L L R R L L",
             chart16(["R", "R", "L", "L", "R", "R", "L", "L"])),
    Rudiment("single-paradiddle", "Single Paradiddle", 1, "R L R R L R L L",
             chart16(["R", "L", "R", "R", "L", "R", "L", "L"])),
    Rudiment("flam", "Flam", 1, "fR fL alternating",
             chart16(["fR", "-", "fL", "-", "fR", "-", "fL", "-"])),
    Rudiment("drag", "Drag", 1, "drR drL alternating",
             chart16(["drR", "-", "drL", "-", "drR", "-", "drL", "-"])),
    Rudiment("paradiddle-diddle", "Paradiddle-Diddle", 2, "R L R R L L",
             chart16(["R", "L", "R", "R", "L", "L", "-", "-"])),
    Rudiment("five-stroke-roll", "5 Stroke Roll", 2, "RR LL R",
             chart16(["R", "R", "L", "L", "R", "-", "-", "-"])),
    Rudiment("flam-tap", "Flam Tap", 2, "fR R fL L",
             chart16(["fR", "R", "fL", "L", "fR", "R", "fL", "L"])),
)

RUDIMENT_RUBRIC: tuple[RubricCriterion, ...] = (
    RubricCriterion("sticking", "Sticking Accuracy", 0.5),
    RubricCriterion("evenness", "Evenness / Open-Close", 0.3),
    RubricCriterion("tempo", "Tempo Control", 0.2),
)


# =============================================================================
# Catalog
# =============================================================================


class RudimentCatalog:
    """
    Ordered, read-only collection of rudiments with id lookup.

    Iteration order is the declaration order, which is also the final
    tie-breaker when the scheduler sorts rudiments.
    """

    def __init__(self, rudiments: Sequence[Rudiment] = RUDIMENTS):
        self._rudiments = tuple(rudiments)
        self._by_id: dict[str, Rudiment] = {}
        for rudiment in self._rudiments:
            if rudiment.id in self._by_id:
                raise CatalogError(f"Duplicate rudiment id: {rudiment.id}")
            self._by_id[rudiment.id] = rudiment

    def __iter__(self) -> Iterator[Rudiment]:
        return iter(self._rudiments)

    def __len__(self) -> int:
        return len(self._rudiments)

    def __contains__(self, rudiment_id: object) -> bool:
        return rudiment_id in self._by_id

    def get(self, rudiment_id: str) -> Rudiment | None:
        return self._by_id.get(rudiment_id)

    def require(self, rudiment_id: str) -> Rudiment:
        """Return a rudiment or raise UnknownRudiment."""
        try:
            return self._by_id[rudiment_id]
        except KeyError:
            raise UnknownRudiment(rudiment_id) from None

    def by_tier(self, tier: int) -> list[Rudiment]:
        return [r for r in self._rudiments if r.tier == tier]

    @classmethod
    def from_file(cls, path: Path) -> RudimentCatalog:
        """
        Load a catalog from a JSON file.

        The file holds either a list of rudiment objects or an object with a
        ``rudiments`` list.

        Raises:
            CatalogError: if the file cannot be read or an entry is invalid
        """
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise CatalogError(f"Cannot read catalog {path}: {exc}") from exc

        if isinstance(data, dict):
            data = data.get("rudiments")
        if not isinstance(data, list):
            raise CatalogError(f"Catalog {path} must contain a list of rudiments")

        catalog = cls([Rudiment.from_dict(entry) for entry in data])
        logger.info(f"Loaded {len(catalog)} rudiments from {path}")
        return catalog


def load_catalog(path: Path | None = None) -> RudimentCatalog:
    """Return the catalog from ``path`` or the built-in one."""
    if path is None:
        return RudimentCatalog()
    return RudimentCatalog.from_file(path)


def curriculum_by_tier(catalog: RudimentCatalog) -> dict[int, list[Rudiment]]:
    """Group rudiments by tier for the curriculum view (tiers 1-4, possibly empty)."""
    return {tier: catalog.by_tier(tier) for tier in TIERS}

"""Venue lookup.

Venues come from a JSON file holding a list of objects with ``id``, ``name``,
``latitude`` and ``longitude`` and optionally ``nickname`` and
``additional_information``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Protocol

from .errors import UnknownVenue

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Venue:
    id: str
    name: str
    latitude: float
    longitude: float
    nickname: Optional[str] = None
    additional_information: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.nickname or self.name

    @property
    def directions_url(self) -> str:
        return (
            "https://www.google.com/maps/dir/Current+Location/"
            f"{self.latitude},{self.longitude}"
        )


class VenueDirectory(Protocol):
    def get(self, venue_id: str) -> Venue: ...


class StaticVenueDirectory:
    def __init__(self, venues: Iterable[Venue]) -> None:
        self._venues = {venue.id: venue for venue in venues}

    def __len__(self) -> int:
        return len(self._venues)

    def __contains__(self, venue_id: object) -> bool:
        return venue_id in self._venues

    def get(self, venue_id: str) -> Venue:
        try:
            return self._venues[str(venue_id)]
        except KeyError:
            raise UnknownVenue(f"Unknown venue {venue_id}") from None


def load_venues(path: Path | str) -> StaticVenueDirectory:
    path = Path(path)
    if not path.exists():
        logger.warning("Venue file %s not found, no venues loaded", path)
        return StaticVenueDirectory([])
    venues = []
    for entry in json.loads(path.read_text()):
        try:
            venues.append(
                Venue(
                    id=str(entry["id"]),
                    name=entry["name"],
                    latitude=float(entry["latitude"]),
                    longitude=float(entry["longitude"]),
                    nickname=entry.get("nickname"),
                    additional_information=entry.get("additional_information"),
                )
            )
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Skipping invalid venue entry %r: %s", entry, exc)
    logger.info("Loaded %d venue(s) from %s", len(venues), path)
    return StaticVenueDirectory(venues)

import json

import pytest

from raidbot.errors import UnknownVenue
from raidbot.venues import load_venues


def test_load_venues_skips_invalid_entries(tmp_path, caplog) -> None:
    path = tmp_path / "venues.json"
    path.write_text(
        json.dumps(
            [
                {"id": 1, "name": "Town Fountain", "latitude": "51.5", "longitude": -0.12},
                {"id": "g2", "name": "Library", "nickname": "Lib", "latitude": 1, "longitude": 2},
                {"id": "g3", "name": "No coordinates"},
            ]
        )
    )
    venues = load_venues(path)
    assert len(venues) == 2
    assert venues.get("1").latitude == 51.5
    assert venues.get("g2").display_name == "Lib"
    assert "g3" not in venues
    assert "Skipping invalid venue entry" in caplog.text
    with pytest.raises(UnknownVenue):
        venues.get("g3")


def test_missing_venue_file(tmp_path) -> None:
    assert len(load_venues(tmp_path / "nope.json")) == 0

"""Durable storage for active and archived raids.

Active raids are stored one row per bound channel and overwritten in full on
every save.  Archived raids are appended per venue and never rewritten.  Rows
that cannot be parsed are skipped with a warning so that a schema change never
prevents startup.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from .db.models import ActiveRaid, ArchivedRaid
from .db.session import get_session
from .errors import MalformedRecord, PersistenceFailure
from .raid import Raid

logger = logging.getLogger(__name__)


@contextmanager
def _persisting(action: str, key: object) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("Failed to %s raid %s: %s", action, key, exc)
        raise PersistenceFailure(f"Failed to {action} raid {key}") from exc


def _parse(payload_json: str, key: object) -> Raid | None:
    try:
        return Raid.from_record(json.loads(payload_json))
    except (ValueError, TypeError, MalformedRecord) as exc:
        logger.warning("Skipping malformed raid record %s: %s", key, exc)
        return None


class RaidStore:
    async def get(self, channel_id: int) -> Raid | None:
        with _persisting("load", channel_id):
            async with get_session() as db:
                row = await db.get(ActiveRaid, str(channel_id))
        if row is None:
            return None
        return _parse(row.payload_json, channel_id)

    async def save(self, raid: Raid) -> None:
        key = str(raid.channel_id)
        payload = json.dumps(raid.to_record())
        with _persisting("save", key):
            async with get_session() as db:
                row = await db.get(ActiveRaid, key)
                if row is None:
                    db.add(ActiveRaid(channel_id=key, payload_json=payload))
                else:
                    row.payload_json = payload
                await db.commit()

    async def delete(self, channel_id: int) -> None:
        with _persisting("delete", channel_id):
            async with get_session() as db:
                await db.execute(
                    delete(ActiveRaid).where(ActiveRaid.channel_id == str(channel_id))
                )
                await db.commit()

    async def load_all(self) -> list[Raid]:
        with _persisting("load", "*"):
            async with get_session() as db:
                rows = (await db.execute(select(ActiveRaid))).scalars().all()
        raids = []
        for row in rows:
            raid = _parse(row.payload_json, row.channel_id)
            if raid is not None:
                raids.append(raid)
        return raids

    async def archive_for(self, venue_id: str) -> list[Raid]:
        with _persisting("load archive for", venue_id):
            async with get_session() as db:
                rows = (
                    await db.execute(
                        select(ArchivedRaid)
                        .where(ArchivedRaid.venue_id == str(venue_id))
                        .order_by(ArchivedRaid.id)
                    )
                ).scalars().all()
        raids = []
        for row in rows:
            raid = _parse(row.payload_json, f"{venue_id}#{row.id}")
            if raid is not None:
                raids.append(raid)
        return raids

    async def archive(self, raid: Raid) -> None:
        """Append ``raid`` to its venue's archive and drop the active row."""

        payload = json.dumps(raid.archived().to_record(include_refs=False))
        with _persisting("archive", raid.channel_id):
            async with get_session() as db:
                db.add(
                    ArchivedRaid(venue_id=str(raid.venue_id), payload_json=payload)
                )
                await db.execute(
                    delete(ActiveRaid).where(
                        ActiveRaid.channel_id == str(raid.channel_id)
                    )
                )
                await db.commit()

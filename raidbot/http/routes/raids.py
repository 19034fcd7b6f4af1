from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..deps import api_key_auth, get_engine
from ..schemas import RaidDto
from ...engine import RaidEngine

router = APIRouter(prefix="/api", dependencies=[Depends(api_key_auth)])


def _dump(raids) -> list[dict]:
    return [RaidDto.from_raid(r).model_dump(mode="json", by_alias=True) for r in raids]


@router.get("/raids")
async def list_raids(
    source_channel_id: Optional[int] = Query(default=None, alias="sourceChannelId"),
    engine: RaidEngine = Depends(get_engine),
) -> List[dict]:
    if source_channel_id is not None:
        raids = engine.registry.all_for_source(source_channel_id)
    else:
        raids = engine.registry.all()
    return _dump(sorted(raids, key=lambda r: r.creation_time))


@router.get("/raids/{channel_id}")
async def get_raid(channel_id: int, engine: RaidEngine = Depends(get_engine)) -> dict:
    raid = engine.registry.find(channel_id)
    if raid is None:
        raise HTTPException(status_code=404, detail="Raid not found")
    return RaidDto.from_raid(raid).model_dump(mode="json", by_alias=True)


@router.get("/venues/{venue_id}/archive")
async def venue_archive(venue_id: str, engine: RaidEngine = Depends(get_engine)) -> List[dict]:
    return _dump(await engine.registry.store.archive_for(venue_id))

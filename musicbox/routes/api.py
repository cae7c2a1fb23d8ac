"""
Music Box - JSON API Routes

Provides REST API endpoints for:
- Listing every music identifier (loose, zipped, cloud)
- Resolving an identifier to a local path and parsing it into tracks
- Refreshing the cloud catalog and downloading cloud entries
- Clearing the scratch directory
- Playlist CRUD
- Health check
"""

import asyncio
import time
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from loguru import logger
from pydantic import BaseModel

from musicbox.config import APP_VERSION
from musicbox.services.archive_reader import ArchiveReadError
from musicbox.services.library import MusicLibrary
from musicbox.services.midi_parser import MidiDecodeError
from musicbox.services.music_reader import UnsupportedFormatError, parse_file

router = APIRouter(prefix="/api", tags=["API"])

# Track startup time for health check
_START_TIME = time.time()


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------
class PlaylistCreate(BaseModel):
    name: str


class PlaylistRename(BaseModel):
    new_name: str


class PlaylistEntry(BaseModel):
    id: str


def _library(request: Request) -> MusicLibrary:
    return request.app.state.library


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------
@router.get("/health")
async def health():
    return {
        "status": "ok",
        "version": APP_VERSION,
        "uptime_seconds": round(time.time() - _START_TIME, 1),
    }


# ---------------------------------------------------------------------------
# Music listing & resolution
# ---------------------------------------------------------------------------
@router.get("/music")
async def list_music(request: Request):
    library = _library(request)
    try:
        identifiers = await library.resolver.list_all()
    except ArchiveReadError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"music": identifiers, "count": len(identifiers)}


@router.post("/music/refresh")
async def refresh_music(request: Request):
    library = _library(request)
    library.resolver.invalidate_listing_cache()
    return await list_music(request)


@router.get("/music/resolve")
async def resolve_music(request: Request, id: str = Query(..., min_length=1)):
    library = _library(request)
    try:
        path = await library.resolver.resolve(id)
    except ArchiveReadError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if path is None:
        raise HTTPException(status_code=404, detail=f"Music file not available: {id}")
    return {"id": id, "origin": library.resolver.origin_of(id).value, "path": path}


@router.get("/music/tracks")
async def music_tracks(
    request: Request,
    id: str = Query(..., min_length=1),
    format: Optional[str] = Query(None),
):
    library = _library(request)
    try:
        path = await library.resolver.resolve_absolute(id)
    except ArchiveReadError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if path is None or not path.is_file():
        raise HTTPException(status_code=404, detail=f"Music file not available: {id}")

    try:
        tracks_data = await asyncio.to_thread(parse_file, path, format)
    except UnsupportedFormatError as e:
        raise HTTPException(status_code=415, detail=str(e))
    except MidiDecodeError as e:
        logger.error("❌ Failed to decode {}: {}", id, e)
        raise HTTPException(status_code=422, detail=str(e))
    return tracks_data.to_dict()


@router.delete("/cache")
async def clear_cache(request: Request):
    await _library(request).resolver.clear_temporary_extractions()
    return {"success": True}


# ---------------------------------------------------------------------------
# Cloud
# ---------------------------------------------------------------------------
@router.post("/cloud/refresh")
async def refresh_cloud(request: Request, force: bool = Query(False)):
    library = _library(request)
    result = await library.cloud_source.refresh_catalog(force=force)
    if not result.success:
        raise HTTPException(status_code=502, detail=result.error)
    if not result.skipped:
        library.resolver.invalidate_listing_cache()
    return result.to_dict()


@router.post("/cloud/fetch")
async def fetch_cloud_entry(request: Request, id: str = Query(..., min_length=1)):
    library = _library(request)
    result = await library.cloud_source.materialize_entry(id)
    if result.not_found:
        raise HTTPException(status_code=404, detail=f"Not in cloud catalog: {id}")
    if not result.success:
        raise HTTPException(status_code=502, detail=result.error)
    return result.to_dict()


# ---------------------------------------------------------------------------
# Playlists
# ---------------------------------------------------------------------------
@router.get("/playlists")
async def list_playlists(request: Request):
    playlists = _library(request).playlists
    return {"playlists": await asyncio.to_thread(playlists.list_names)}


@router.post("/playlists", status_code=201)
async def create_playlist(request: Request, body: PlaylistCreate):
    playlists = _library(request).playlists
    if not await asyncio.to_thread(playlists.create_list, body.name):
        raise HTTPException(status_code=409, detail=f"Playlist exists: {body.name}")
    return {"success": True, "name": body.name}


@router.get("/playlists/{name}")
async def get_playlist(request: Request, name: str):
    playlists = _library(request).playlists
    playlist = await asyncio.to_thread(playlists.get_list, name)
    if playlist is None:
        raise HTTPException(status_code=404, detail=f"Playlist not found: {name}")
    return playlist


@router.put("/playlists/{name}")
async def rename_playlist(request: Request, name: str, body: PlaylistRename):
    playlists = _library(request).playlists
    if not await asyncio.to_thread(playlists.rename_list, name, body.new_name):
        raise HTTPException(status_code=409, detail=f"Cannot rename playlist: {name}")
    return {"success": True, "name": body.new_name}


@router.delete("/playlists/{name}")
async def delete_playlist(request: Request, name: str):
    playlists = _library(request).playlists
    if not await asyncio.to_thread(playlists.delete_list, name):
        raise HTTPException(status_code=404, detail=f"Playlist not found: {name}")
    return {"success": True}


@router.post("/playlists/{name}/music")
async def add_to_playlist(request: Request, name: str, body: PlaylistEntry):
    playlists = _library(request).playlists
    if not await asyncio.to_thread(playlists.add_music, name, body.id):
        raise HTTPException(status_code=409, detail=f"Cannot add {body.id} to {name}")
    return {"success": True}


@router.delete("/playlists/{name}/music")
async def remove_from_playlist(request: Request, name: str, id: str = Query(...)):
    playlists = _library(request).playlists
    if not await asyncio.to_thread(playlists.remove_music, name, id):
        raise HTTPException(status_code=404, detail=f"{id} is not in {name}")
    return {"success": True}

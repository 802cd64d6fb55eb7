"""FastAPI application exposing the matchmaking simulator."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from matchsim import (
    InvalidSlot,
    ListenerError,
    LobbyNotFound,
    LobbyRegistry,
    MatchCreated,
    MatchmakingConfig,
    MatchmakingEngine,
)
from matchsim.engine import Clock

logger = logging.getLogger(__name__)

router = APIRouter()


class LobbyCreate(BaseModel):
    class_id: int = Field(default=0, ge=0)


class PlayerJoin(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=30)


class ConfigUpdate(BaseModel):
    allow_class_mix: Optional[bool] = None
    ai_eligible_time_ms: Optional[int] = None
    ai_ready_threshold_ms: Optional[int] = None
    max_lobbies_per_search: Optional[int] = None
    max_matches_per_tick: Optional[int] = None
    class_count: Optional[int] = None
    tick_interval_seconds: Optional[float] = None


def create_app(
    config: Optional[MatchmakingConfig] = None,
    clock: Optional[Clock] = None,
    auto_tick: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application.

    With ``auto_tick`` the engine is ticked in the background every
    ``tick_interval_seconds`` for as long as the app runs; without it ticks
    only happen through ``POST /api/tick``.
    """

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if auto_tick:
            app.state.loop_task = asyncio.create_task(_tick_loop(app))
        try:
            yield
        finally:
            task = app.state.loop_task
            if task:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    app = FastAPI(title="Matchmaking Simulator", lifespan=lifespan)
    engine = MatchmakingEngine(config, clock=clock)
    app.state.engine = engine
    app.state.registry = LobbyRegistry(engine)
    app.state.lock = asyncio.Lock()
    app.state.connections: List[WebSocket] = []
    app.state.loop_task: Optional[asyncio.Task] = None
    app.include_router(router)
    return app


async def _tick_loop(app: FastAPI) -> None:
    while True:
        try:
            await _tick_and_broadcast(app)
        except Exception:
            logger.exception("Matchmaking tick failed")
        await asyncio.sleep(app.state.engine.config.tick_interval_seconds)


async def _tick_and_broadcast(app: FastAPI) -> List[MatchCreated]:
    async with app.state.lock:
        try:
            matches = await asyncio.to_thread(app.state.engine.tick)
        except ListenerError as exc:
            # Already logged by the engine; the matches themselves stand.
            matches = exc.matches
        message = {
            "type": "tick",
            "queue": [entry.serialise() for entry in app.state.engine.queue_view()],
            "matches": [match.serialise() for match in matches],
        }
    await _broadcast(app, message)
    return matches


async def _broadcast(app: FastAPI, message: dict) -> None:
    stale = []
    for websocket in list(app.state.connections):
        try:
            await websocket.send_json(message)
        except (RuntimeError, WebSocketDisconnect):
            stale.append(websocket)
    for websocket in stale:
        logger.debug("Dropping stale websocket")
        with contextlib.suppress(ValueError):
            app.state.connections.remove(websocket)


def _lobby_or_404(registry: LobbyRegistry, lobby_id: int):
    try:
        return registry.get(lobby_id)
    except LobbyNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/health")
async def healthcheck(request: Request) -> Dict[str, Any]:
    """Simple readiness probe."""

    engine: MatchmakingEngine = request.app.state.engine
    async with request.app.state.lock:
        return {"status": "ok", "queued": len(engine.queue), "ticks": engine.ticks_elapsed}


@router.get("/api/lobbies")
async def list_lobbies(request: Request) -> List[Dict[str, Any]]:
    registry: LobbyRegistry = request.app.state.registry
    async with request.app.state.lock:
        return [lobby.serialise() for lobby in registry.lobbies()]


@router.post("/api/lobbies", status_code=201)
async def create_lobby(request: Request, body: Optional[LobbyCreate] = None) -> Dict[str, Any]:
    class_id = body.class_id if body else 0
    async with request.app.state.lock:
        lobby = request.app.state.registry.create_lobby(class_id=class_id)
    return lobby.serialise()


@router.delete("/api/lobbies/{lobby_id}", status_code=204)
async def delete_lobby(request: Request, lobby_id: int) -> None:
    async with request.app.state.lock:
        try:
            request.app.state.registry.delete_lobby(lobby_id)
        except LobbyNotFound as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post("/api/lobbies/{lobby_id}/players")
async def add_player(request: Request, lobby_id: int, body: Optional[PlayerJoin] = None) -> Dict[str, Any]:
    name = body.name if body else None
    async with request.app.state.lock:
        lobby = _lobby_or_404(request.app.state.registry, lobby_id)
        slot = request.app.state.registry.add_player(lobby_id, name)
        if slot is None:
            raise HTTPException(status_code=400, detail=f"lobby {lobby_id} is full")
        return lobby.serialise()


@router.delete("/api/lobbies/{lobby_id}/players/{slot}")
async def remove_player(request: Request, lobby_id: int, slot: int) -> Dict[str, Any]:
    async with request.app.state.lock:
        lobby = _lobby_or_404(request.app.state.registry, lobby_id)
        try:
            lobby.remove_player(slot)
        except InvalidSlot as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return lobby.serialise()


@router.post("/api/lobbies/{lobby_id}/slots/{slot}/click")
async def click_slot(request: Request, lobby_id: int, slot: int) -> Dict[str, Any]:
    async with request.app.state.lock:
        lobby = _lobby_or_404(request.app.state.registry, lobby_id)
        try:
            lobby.click_slot(slot)
        except InvalidSlot as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return lobby.serialise()


@router.post("/api/lobbies/{lobby_id}/ready")
async def toggle_ready(request: Request, lobby_id: int) -> Dict[str, Any]:
    async with request.app.state.lock:
        lobby = _lobby_or_404(request.app.state.registry, lobby_id)
        lobby.toggle_ready()
        return lobby.serialise()


@router.post("/api/lobbies/{lobby_id}/class")
async def cycle_class(request: Request, lobby_id: int) -> Dict[str, Any]:
    async with request.app.state.lock:
        _lobby_or_404(request.app.state.registry, lobby_id)
        request.app.state.registry.cycle_class(lobby_id)
        return request.app.state.registry.get(lobby_id).serialise()


@router.get("/api/queue")
async def get_queue(request: Request) -> List[Dict[str, Any]]:
    async with request.app.state.lock:
        return [entry.serialise() for entry in request.app.state.engine.queue_view()]


@router.get("/api/matches")
async def get_matches(request: Request) -> List[Dict[str, Any]]:
    registry: LobbyRegistry = request.app.state.registry
    async with request.app.state.lock:
        return [match.serialise() for match in registry.recent_matches]


@router.get("/api/config")
async def get_config(request: Request) -> Dict[str, Any]:
    return request.app.state.engine.config.serialise()


@router.put("/api/config")
async def update_config(request: Request, body: ConfigUpdate) -> Dict[str, Any]:
    changes = body.model_dump(exclude_none=True)
    async with request.app.state.lock:
        try:
            config = request.app.state.engine.configure(**changes)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
    return config.serialise()


@router.post("/api/tick")
async def manual_tick(request: Request) -> Dict[str, Any]:
    matches = await _tick_and_broadcast(request.app)
    return {"matches": [match.serialise() for match in matches]}


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    await websocket.accept()
    app = websocket.app
    async with app.state.lock:
        app.state.connections.append(websocket)
        logger.info("Websocket viewer connected (%d total)", len(app.state.connections))
        snapshot = {
            "type": "init",
            "config": app.state.engine.config.serialise(),
            "lobbies": [lobby.serialise() for lobby in app.state.registry.lobbies()],
            "queue": [entry.serialise() for entry in app.state.engine.queue_view()],
        }
    await websocket.send_json(snapshot)
    try:
        while True:
            message = await websocket.receive_json()
            if message.get("type") == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        pass
    finally:
        with contextlib.suppress(ValueError):
            app.state.connections.remove(websocket)


app = create_app()

__all__ = ["app", "create_app"]

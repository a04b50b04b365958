from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Body, FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from .config import Settings, configure_logging, load_environment
from .models import (
    ActionResolutionModel,
    CreateSessionRequestModel,
    HandSummaryModel,
    HumanActionRequestModel,
    PlayerStatsModel,
    ScoreRecordModel,
    ScoreSubmissionModel,
    SessionStateModel,
)
from .scoring import GAME_TYPES, ScoreSubmissionError
from .session_manager import InvalidActionError, SessionFlowError, SessionManager, SessionNotFoundError

load_environment()
settings = Settings.from_env()
configure_logging(settings.log_level)
manager = SessionManager(settings)


@asynccontextmanager
async def lifespan(_: FastAPI):
    try:
        yield
    finally:
        await manager.aclose()


app = FastAPI(
    title="Family Games Poker API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/api/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/api/sessions", response_model=SessionStateModel)
async def create_session(payload: Optional[CreateSessionRequestModel] = Body(default=None)) -> SessionStateModel:
    request = payload or CreateSessionRequestModel()
    return await manager.create_session(player_name=request.player_name, seed=request.seed)


@app.get("/api/sessions/{session_id}", response_model=SessionStateModel)
async def get_session(session_id: str) -> SessionStateModel:
    try:
        return await manager.get_state(session_id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.post("/api/sessions/{session_id}/actions", response_model=ActionResolutionModel)
async def apply_action(session_id: str, payload: HumanActionRequestModel) -> ActionResolutionModel:
    try:
        return await manager.apply_action(session_id, payload)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidActionError as exc:
        raise HTTPException(
            status_code=422,
            detail={
                "message": str(exc),
                "legalActions": exc.legal_actions.model_dump(by_alias=True),
            },
        ) from exc
    except SessionFlowError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@app.post("/api/sessions/{session_id}/next-hand", response_model=SessionStateModel)
async def next_hand(session_id: str) -> SessionStateModel:
    try:
        return await manager.next_hand(session_id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except SessionFlowError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@app.post("/api/sessions/{session_id}/reset", response_model=SessionStateModel)
async def reset(session_id: str) -> SessionStateModel:
    try:
        return await manager.reset(session_id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/api/sessions/{session_id}/hands", response_model=list[HandSummaryModel])
async def list_hands(session_id: str) -> list[HandSummaryModel]:
    try:
        return await manager.list_hands(session_id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/api/sessions/{session_id}/stats", response_model=dict[str, PlayerStatsModel])
async def get_stats(session_id: str) -> dict[str, PlayerStatsModel]:
    try:
        return await manager.get_stats(session_id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/api/leaderboard", response_model=list[ScoreRecordModel])
async def leaderboard(game: str = Query(...), limit: int = Query(10, ge=1, le=100)) -> list[ScoreRecordModel]:
    if game not in GAME_TYPES:
        raise HTTPException(status_code=400, detail=f"Unknown game: {game}")
    return await manager.leaderboard(game, limit)


@app.post("/api/scores", response_model=ScoreRecordModel)
async def submit_score(payload: ScoreSubmissionModel) -> ScoreRecordModel:
    try:
        return await manager.submit_score(payload)
    except ScoreSubmissionError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


def _ws_error_payload(request_id: str, status: int, message: str, extra: dict[str, Any] | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "type": "error",
        "requestId": request_id,
        "status": status,
        "message": message,
    }
    if extra:
        payload.update(extra)
    return payload


def _ws_state(request_id: str, state: SessionStateModel) -> dict[str, Any]:
    return {"type": "session_state", "requestId": request_id, "payload": state.model_dump(by_alias=True)}


@app.websocket("/api/ws/sessions/{session_id}")
async def session_socket(websocket: WebSocket, session_id: str) -> None:
    await websocket.accept()
    try:
        initial_state = await manager.get_state(session_id)
    except SessionNotFoundError as exc:
        await websocket.send_json(_ws_error_payload(request_id="", status=404, message=str(exc)))
        await websocket.close(code=4404)
        return

    await websocket.send_json(_ws_state("", initial_state))

    while True:
        try:
            raw_message = await websocket.receive_json()
        except WebSocketDisconnect:
            return
        except ValueError:
            await websocket.send_json(_ws_error_payload(request_id="", status=400, message="Malformed websocket JSON payload."))
            continue

        if not isinstance(raw_message, dict):
            await websocket.send_json(_ws_error_payload(request_id="", status=400, message="Websocket message must be a JSON object."))
            continue

        request_id = str(raw_message.get("requestId", ""))
        op = str(raw_message.get("op", "")).strip().lower()

        try:
            if op == "ping":
                await websocket.send_json({"type": "pong", "requestId": request_id})
            elif op == "get_state":
                await websocket.send_json(_ws_state(request_id, await manager.get_state(session_id)))
            elif op == "action":
                action_payload = HumanActionRequestModel.model_validate(
                    {"actionType": raw_message.get("actionType"), "amount": raw_message.get("amount")}
                )
                result = await manager.apply_action(session_id, action_payload)
                await websocket.send_json(
                    {
                        "type": "action_resolution",
                        "requestId": request_id,
                        "payload": result.model_dump(by_alias=True),
                    }
                )
            elif op == "next_hand":
                await websocket.send_json(_ws_state(request_id, await manager.next_hand(session_id)))
            elif op == "reset":
                await websocket.send_json(_ws_state(request_id, await manager.reset(session_id)))
            else:
                await websocket.send_json(
                    _ws_error_payload(request_id=request_id, status=400, message=f"Unsupported websocket op: {op}")
                )
        except SessionNotFoundError as exc:
            await websocket.send_json(_ws_error_payload(request_id=request_id, status=404, message=str(exc)))
        except ValidationError as exc:
            await websocket.send_json(
                _ws_error_payload(
                    request_id=request_id,
                    status=422,
                    message="Invalid action payload.",
                    extra={"detail": exc.errors(include_url=False, include_context=False)},
                )
            )
        except InvalidActionError as exc:
            await websocket.send_json(
                _ws_error_payload(
                    request_id=request_id,
                    status=422,
                    message=str(exc),
                    extra={"legalActions": exc.legal_actions.model_dump(by_alias=True)},
                )
            )
        except SessionFlowError as exc:
            await websocket.send_json(_ws_error_payload(request_id=request_id, status=409, message=str(exc)))

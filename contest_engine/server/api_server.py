"""FastAPI server exposing contest engine commands over HTTP."""

from __future__ import annotations

from decimal import Decimal
from threading import Thread

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel
import uvicorn

from contest_engine.constants.about import APP_ABOUT_TEXT, APP_LICENSE, APP_NAME, APP_VERSION
from contest_engine.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from contest_engine.core.errors import CommandResult, ErrorCode
from contest_engine.core.events import EventRecorder
from contest_engine.core.models import ContestSpec
from contest_engine.core.services.contest_pools import POOL_CATEGORIES, STAKE_TIERS, list_pools
from contest_engine.core.services.room_registry import RoomRegistry

_NOT_FOUND = {ErrorCode.CONTEST_NOT_FOUND, ErrorCode.PRIVATE_CODE_NOT_FOUND}
_UNPROCESSABLE = {ErrorCode.VALIDATION_ERROR, ErrorCode.INVALID_ANSWER}


class ContestPayload(BaseModel):
    """Payload schema for creating a custom contest."""

    name: str
    entry_fee: Decimal
    max_participants: int
    question_count: int
    time_per_question_seconds: float | None = None
    prize_split: list[Decimal]
    is_private: bool = False
    min_participants: int | None = None
    created_by: str | None = None


class PoolContestPayload(BaseModel):
    """Payload schema for creating a contest from a preset pool."""

    pool_id: str
    name: str | None = None
    is_private: bool = False
    created_by: str | None = None


class UserPayload(BaseModel):
    user_id: str


class CodeJoinPayload(BaseModel):
    code: str
    user_id: str


class AnswerPayload(BaseModel):
    """Payload schema for submitted answers."""

    user_id: str
    question_index: int
    selected_index: int


class CancelPayload(BaseModel):
    reason: str | None = None


def _status_for(error: ErrorCode | None) -> int:
    if error in _NOT_FOUND:
        return 404
    if error in _UNPROCESSABLE:
        return 422
    return 409


def _unwrap(result: CommandResult) -> object:
    """Return the result value or raise the matching HTTP error."""
    if not result.ok:
        raise HTTPException(
            status_code=_status_for(result.error),
            detail={"error": result.error.value if result.error else None, "message": result.message},
        )
    value = result.value
    return value.to_dict() if hasattr(value, "to_dict") else value


def _get_registry_dependency(registry: RoomRegistry):
    def dependency() -> RoomRegistry:
        return registry

    return dependency


def create_api_app(registry: RoomRegistry, recorder: EventRecorder | None = None) -> FastAPI:
    """Create a FastAPI application wired to the provided room registry."""
    app = FastAPI(
        title=f"{APP_NAME} API",
        version=APP_VERSION,
        description=APP_ABOUT_TEXT,
        license_info={"name": APP_LICENSE},
    )
    registry_dep = _get_registry_dependency(registry)
    if recorder is None:
        recorder = EventRecorder()
        registry.events.subscribe(recorder)
        registry.on_evicted(recorder.forget)

    @app.get("/pools")
    def get_pools(category: str | None = None, stake_tier: str | None = None) -> dict[str, object]:
        if category is not None and category not in POOL_CATEGORIES:
            raise HTTPException(status_code=422, detail=f"Unknown category '{category}'.")
        if stake_tier is not None and stake_tier not in STAKE_TIERS:
            raise HTTPException(status_code=422, detail=f"Unknown stake tier '{stake_tier}'.")
        return {"pools": [pool.to_dict() for pool in list_pools(category, stake_tier)]}

    @app.post("/contests", status_code=201)
    def create_contest(
        payload: ContestPayload,
        reg: RoomRegistry = Depends(registry_dep),
    ) -> dict[str, object]:
        spec = ContestSpec(
            name=payload.name,
            entry_fee=payload.entry_fee,
            max_participants=payload.max_participants,
            question_count=payload.question_count,
            time_per_question_seconds=payload.time_per_question_seconds,
            prize_split=tuple(payload.prize_split),
            is_private=payload.is_private,
            min_participants=payload.min_participants,
            created_by=payload.created_by,
        )
        contest_id = _unwrap(reg.create_contest(spec))
        return _unwrap(reg.get_snapshot(contest_id))

    @app.post("/contests/from-pool", status_code=201)
    def create_contest_from_pool(
        payload: PoolContestPayload,
        reg: RoomRegistry = Depends(registry_dep),
    ) -> dict[str, object]:
        contest_id = _unwrap(
            reg.create_contest_from_pool(
                payload.pool_id,
                name=payload.name,
                is_private=payload.is_private,
                created_by=payload.created_by,
            )
        )
        return _unwrap(reg.get_snapshot(contest_id))

    @app.post("/contests/{contest_id}/join", status_code=201)
    def join_contest(
        contest_id: str,
        payload: UserPayload,
        reg: RoomRegistry = Depends(registry_dep),
    ) -> dict[str, object]:
        return _unwrap(reg.join_contest(contest_id, payload.user_id))

    @app.post("/join-by-code", status_code=201)
    def join_by_code(
        payload: CodeJoinPayload,
        reg: RoomRegistry = Depends(registry_dep),
    ) -> dict[str, object]:
        return _unwrap(reg.join_by_code(payload.code, payload.user_id))

    @app.post("/contests/{contest_id}/answer", status_code=201)
    def submit_answer(
        contest_id: str,
        payload: AnswerPayload,
        reg: RoomRegistry = Depends(registry_dep),
    ) -> dict[str, object]:
        return _unwrap(
            reg.submit_answer(contest_id, payload.user_id, payload.question_index, payload.selected_index)
        )

    @app.post("/contests/{contest_id}/disconnect")
    def disconnect(
        contest_id: str,
        payload: UserPayload,
        reg: RoomRegistry = Depends(registry_dep),
    ) -> dict[str, object]:
        return _unwrap(reg.mark_disconnected(contest_id, payload.user_id))

    @app.post("/contests/{contest_id}/reconnect")
    def reconnect(
        contest_id: str,
        payload: UserPayload,
        reg: RoomRegistry = Depends(registry_dep),
    ) -> dict[str, object]:
        return _unwrap(reg.mark_reconnected(contest_id, payload.user_id))

    @app.post("/contests/{contest_id}/cancel")
    def cancel_contest(
        contest_id: str,
        payload: CancelPayload,
        reg: RoomRegistry = Depends(registry_dep),
    ) -> dict[str, object]:
        reason = _unwrap(reg.cancel_contest(contest_id, payload.reason or ""))
        return {"contest_id": contest_id, "reason": reason}

    @app.get("/contests/{contest_id}/snapshot")
    def get_snapshot(contest_id: str, reg: RoomRegistry = Depends(registry_dep)) -> dict[str, object]:
        return _unwrap(reg.get_snapshot(contest_id))

    @app.get("/contests/{contest_id}/results")
    def get_results(contest_id: str, reg: RoomRegistry = Depends(registry_dep)) -> dict[str, object]:
        return _unwrap(reg.get_results(contest_id))

    @app.get("/contests/{contest_id}/events")
    def get_events(
        contest_id: str,
        after: int = 0,
        reg: RoomRegistry = Depends(registry_dep),
    ) -> dict[str, object]:
        _unwrap(reg.get_snapshot(contest_id))
        return {"events": [event.to_dict() for event in recorder.events_for(contest_id, after)]}

    return app


def start_api_server(
    registry: RoomRegistry,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    recorder: EventRecorder | None = None,
) -> Thread:
    """Start the FastAPI server in a background daemon thread."""
    app = create_api_app(registry, recorder)
    config = uvicorn.Config(app=app, host=host, port=port, log_level="info")
    server = uvicorn.Server(config)

    def run_server() -> None:
        server.run()

    thread = Thread(target=run_server, name="ContestApiServer", daemon=True)
    thread.start()
    return thread

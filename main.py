# main.py (live ball-by-ball engine)
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from fastapi import Body, FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from cricket_live.config import (
    COMMENTARY_FEED_LIMIT,
    DEFAULT_OVERS,
    DEFAULT_PLAYERS_PER_TEAM,
    LOG_LEVEL,
    validate_config,
)
from cricket_live.engine import LiveMatchEngine
from cricket_live.errors import (
    EngineError,
    InternalInconsistencyError,
    MatchNotFoundError,
    StateConflictError,
    ValidationError,
)
from cricket_live.logging_config import setup_logging
from cricket_live.models import MatchConfig, TeamSheet
from cricket_live.publisher import pump

setup_logging(LOG_LEVEL)
logger = logging.getLogger(__name__)


# -----------------------
# Helpers
# -----------------------
def _http_error(e: EngineError) -> HTTPException:
    if isinstance(e, ValidationError):
        return HTTPException(status_code=422, detail=e.to_dict())
    if isinstance(e, MatchNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, StateConflictError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, InternalInconsistencyError):
        return HTTPException(status_code=423, detail=str(e))
    return HTTPException(status_code=500, detail=f"Unexpected engine error: {str(e)}")


# -----------------------
# Request models
# -----------------------
class TeamIn(BaseModel):
    team_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    players: List[str] = Field(..., min_length=2, description="Player ids available to bat/bowl")


class CreateMatchRequest(BaseModel):
    match_id: str = Field(..., min_length=1)
    team_a: TeamIn
    team_b: TeamIn
    overs: int = Field(DEFAULT_OVERS, ge=1, le=50)
    players_per_team: int = Field(DEFAULT_PLAYERS_PER_TEAM, ge=2, le=11)
    venue: str = Field("", description="e.g. Wankhede Stadium")


class TossRequest(BaseModel):
    won_by: str = Field(..., description="team_id of the toss winner")
    decision: Literal["bat", "field"]


class StatusRequest(BaseModel):
    status: Literal["scheduled", "toss_done", "live", "completed", "abandoned"]


def create_app(engine: Optional[LiveMatchEngine] = None) -> FastAPI:
    app = FastAPI(
        title="Cricket Live Match Engine API",
        version="0.1.0",
        description="Ball-by-ball scoring, live state, commentary and real-time match feeds",
    )
    app.state.engine = engine if engine is not None else LiveMatchEngine()

    @app.on_event("startup")
    def on_startup():
        validate_config()

    @app.get("/health")
    def health_check():
        return {"status": "ok", "time": datetime.utcnow().isoformat() + "Z"}

    # -----------------------
    # Match setup (config comes from the tournament/team side)
    # -----------------------
    @app.post("/api/matches", status_code=201)
    async def create_match(req: CreateMatchRequest):
        config = MatchConfig(
            match_id=req.match_id.strip(),
            team_a=TeamSheet(req.team_a.team_id.strip(), req.team_a.name, tuple(req.team_a.players)),
            team_b=TeamSheet(req.team_b.team_id.strip(), req.team_b.name, tuple(req.team_b.players)),
            overs=req.overs,
            players_per_team=req.players_per_team,
            venue=req.venue,
        )
        try:
            app.state.engine.create_match(config)
            return app.state.engine.queries.get_live_state(config.match_id)
        except EngineError as e:
            raise _http_error(e)

    @app.get("/api/matches/{match_id}")
    async def get_match(match_id: str):
        try:
            return app.state.engine.queries.get_live_state(match_id)
        except EngineError as e:
            raise _http_error(e)

    # -----------------------
    # Scorer actions
    # -----------------------
    @app.post("/api/matches/{match_id}/toss")
    async def record_toss(match_id: str, req: TossRequest):
        try:
            envelope = app.state.engine.record_toss(match_id, req.won_by.strip(), req.decision)
            return {"toss": {"won_by": req.won_by, "decision": req.decision}, "envelope": envelope.to_dict()}
        except EngineError as e:
            raise _http_error(e)

    @app.post("/api/matches/{match_id}/innings")
    async def begin_innings(match_id: str):
        try:
            innings = app.state.engine.begin_innings(match_id)
            return {"innings": innings.totals_dict(), "bowling_team": innings.bowling_team}
        except EngineError as e:
            raise _http_error(e)

    @app.post("/api/matches/{match_id}/innings/end")
    async def end_innings(match_id: str):
        try:
            app.state.engine.end_innings(match_id)
            return app.state.engine.queries.get_live_state(match_id)
        except EngineError as e:
            raise _http_error(e)

    @app.post("/api/matches/{match_id}/balls")
    async def record_ball(match_id: str, body: Dict[str, Any] = Body(...)):
        try:
            event, envelope = app.state.engine.record_ball(match_id, body)
        except EngineError as e:
            raise _http_error(e)
        return {
            "ball": event.ball_label,
            "innings_closed": event.innings_closed,
            "match_completed": event.match_completed,
            "commentary": event.commentary.text if event.commentary else "",
            "envelope": envelope.to_dict(),
        }

    @app.delete("/api/matches/{match_id}/balls/last")
    async def undo_last_ball(match_id: str):
        try:
            envelope = app.state.engine.undo_last_ball(match_id)
            return {"envelope": envelope.to_dict()}
        except EngineError as e:
            raise _http_error(e)

    @app.post("/api/matches/{match_id}/status")
    async def set_status(match_id: str, req: StatusRequest):
        try:
            match = app.state.engine.set_status(match_id, req.status)
            return {"status": match.status, "result": match.result.to_dict() if match.result else None}
        except EngineError as e:
            raise _http_error(e)

    @app.post("/api/matches/{match_id}/unlock")
    async def unlock_match(match_id: str):
        try:
            app.state.engine.store.unlock(match_id)
            return {"match_id": match_id, "locked": False}
        except EngineError as e:
            raise _http_error(e)

    @app.post("/api/matches/{match_id}/archive")
    async def archive_match(match_id: str):
        try:
            app.state.engine.archive_match(match_id)
            return {"match_id": match_id, "subscribers": 0}
        except EngineError as e:
            raise _http_error(e)

    # -----------------------
    # Public read endpoints
    # -----------------------
    @app.get("/api/matches/{match_id}/commentary")
    async def get_commentary(match_id: str, limit: int = COMMENTARY_FEED_LIMIT):
        try:
            return {"match_id": match_id, "commentary": app.state.engine.queries.get_commentary(match_id, limit)}
        except EngineError as e:
            raise _http_error(e)

    @app.get("/api/live-matches")
    async def list_live_matches():
        matches = app.state.engine.queries.list_live_matches()
        return {"count": len(matches), "matches": matches}

    @app.get("/api/leaderboard/{category}")
    async def get_leaderboard(category: str, limit: int = Query(10, ge=1)):
        try:
            rows = app.state.engine.queries.get_leaderboard(category, limit)
            return {"category": category, "rows": rows}
        except EngineError as e:
            raise _http_error(e)

    # -----------------------
    # Live feed
    # -----------------------
    @app.websocket("/ws/matches/{match_id}")
    async def match_feed(websocket: WebSocket, match_id: str, replay_from: Optional[int] = None):
        eng: LiveMatchEngine = app.state.engine
        try:
            eng.store.get_match(match_id)
        except MatchNotFoundError:
            await websocket.close(code=4404)
            return

        await websocket.accept()
        sub = eng.publisher.subscribe(match_id, replay_from=replay_from)
        snapshot = eng.queries.get_live_state(match_id)

        async def _watch_disconnect() -> None:
            try:
                while True:
                    message = await websocket.receive()
                    if message["type"] == "websocket.disconnect":
                        break
            except (WebSocketDisconnect, RuntimeError):
                pass
            finally:
                eng.publisher.unsubscribe(sub, discard_pending=True)

        watcher = asyncio.create_task(_watch_disconnect())
        try:
            await websocket.send_json({"kind": "snapshot", **snapshot})
            await pump(eng.publisher, sub, websocket.send_json, fatal=(WebSocketDisconnect,))
        except WebSocketDisconnect:
            logger.info("Match %s: viewer disconnected", match_id)
        finally:
            watcher.cancel()
            eng.publisher.unsubscribe(sub, discard_pending=True)

    return app


app = create_app()

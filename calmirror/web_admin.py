from __future__ import annotations

import os
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from calmirror.caldav_client import CalDAVService
from calmirror.config_manager import MASK, SECRET_FIELDS, ConfigManager
from calmirror.scheduler import SyncScheduler
from calmirror.state_store import StateStore
from calmirror.sync_engine import SyncEngine


class ConfigUpdateRequest(BaseModel):
    payload: dict[str, Any] = Field(default_factory=dict)


class SyncPairUpdateRequest(BaseModel):
    calendar_a_id: str = Field(min_length=1)
    calendar_b_id: str = Field(min_length=1)
    horizon_days: int | None = Field(default=None, ge=1, le=366)
    copy_color: str | None = None


class AppContext:
    def __init__(self, config_path: str, state_path: str) -> None:
        self.config_manager = ConfigManager(config_path)
        self.state_store = StateStore(state_path)
        self.sync_engine = SyncEngine(self.config_manager, self.state_store)
        self.scheduler = SyncScheduler(self.sync_engine, self.config_manager)


def _masked_meta(config_dict: dict[str, Any]) -> dict[str, Any]:
    meta: dict[str, Any] = {}
    for section, key in SECRET_FIELDS:
        is_set = bool(str(config_dict.get(section, {}).get(key, "")).strip())
        meta.setdefault(section, {})[key] = {"is_masked": is_set}
    return meta


def _sanitize_config_payload(payload: dict[str, Any], current: dict[str, Any]) -> dict[str, Any]:
    """Drop masked or blank secrets so a round-tripped form does not wipe them."""
    sanitized = dict(payload)
    for section, key in SECRET_FIELDS:
        block = sanitized.get(section)
        if not isinstance(block, dict):
            continue
        block = dict(block)
        value = block.get(key)
        if value is not None and str(value).strip() in {"", MASK}:
            if str(current.get(section, {}).get(key, "")):
                block.pop(key, None)
            else:
                block[key] = ""
        if block:
            sanitized[section] = block
        else:
            sanitized.pop(section, None)
    return sanitized


def create_app() -> FastAPI:
    config_path = os.getenv("CALMIRROR_CONFIG_PATH", "config.yaml")
    state_path = os.getenv("CALMIRROR_STATE_PATH", "data/state.db")
    context = AppContext(config_path=config_path, state_path=state_path)

    app = FastAPI(title="calmirror Admin", version="0.1.0")
    app.state.context = context

    @app.on_event("startup")
    def _startup() -> None:
        app.state.context.scheduler.start()

    @app.on_event("shutdown")
    def _shutdown() -> None:
        app.state.context.scheduler.stop()

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/config")
    def get_config() -> dict[str, Any]:
        return app.state.context.config_manager.masked()

    @app.put("/api/config")
    def put_config(request: ConfigUpdateRequest) -> dict[str, Any]:
        current = app.state.context.config_manager.load().to_dict()
        sanitized_payload = _sanitize_config_payload(request.payload, current)
        app.state.context.config_manager.update(sanitized_payload)
        return {
            "message": "config updated",
            "config": app.state.context.config_manager.masked(),
        }

    @app.get("/api/config/raw")
    def get_config_raw() -> dict[str, Any]:
        raw = app.state.context.config_manager.load().to_dict()
        masked = app.state.context.config_manager.masked()
        return {"config": masked, "meta": _masked_meta(raw)}

    @app.get("/api/calendars")
    def list_calendars() -> dict[str, Any]:
        config = app.state.context.config_manager.load()
        service = CalDAVService(config.caldav)
        try:
            calendars = service.list_calendars()
        except Exception as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        output = []
        for cal in calendars:
            item = cal.to_dict()
            item["is_calendar_a"] = cal.calendar_id == config.sync.calendar_a_id
            item["is_calendar_b"] = cal.calendar_id == config.sync.calendar_b_id
            output.append(item)
        return {"calendars": output}

    @app.put("/api/sync-pair")
    def put_sync_pair(request: SyncPairUpdateRequest) -> dict[str, Any]:
        calendar_a_id = request.calendar_a_id.strip()
        calendar_b_id = request.calendar_b_id.strip()
        if calendar_a_id == calendar_b_id:
            raise HTTPException(status_code=400, detail="calendar_a_id and calendar_b_id must differ")
        sync_update: dict[str, Any] = {"calendar_a_id": calendar_a_id, "calendar_b_id": calendar_b_id}
        if request.horizon_days is not None:
            sync_update["horizon_days"] = request.horizon_days
        if request.copy_color is not None:
            sync_update["copy_color"] = request.copy_color
        updated = app.state.context.config_manager.update({"sync": sync_update})
        return {"message": "sync pair updated", "sync": updated.sync.__dict__}

    @app.post("/api/sync/run")
    def trigger_sync() -> dict[str, str]:
        app.state.context.scheduler.trigger_manual()
        return {"message": "sync triggered"}

    @app.post("/api/sync/run-now")
    def run_sync_now() -> dict[str, Any]:
        result = app.state.context.sync_engine.run_once(trigger="manual-now")
        return {"message": "sync completed", "result": result.to_dict()}

    @app.get("/api/sync/status")
    def sync_status(limit: int = 20) -> dict[str, Any]:
        return {
            "scheduler_running": app.state.context.scheduler.is_running,
            "runs": app.state.context.state_store.recent_sync_runs(limit=limit),
        }

    @app.get("/api/audit/events")
    def audit_events(limit: int = 100, run_id: int | None = None) -> dict[str, Any]:
        return {"events": app.state.context.state_store.recent_audit_events(limit=limit, run_id=run_id)}

    @app.get("/api/debug/runs/{run_id}")
    def debug_run(run_id: int, limit: int = 500) -> dict[str, Any]:
        run = app.state.context.state_store.get_sync_run(run_id)
        if run is None:
            raise HTTPException(status_code=404, detail="run not found")
        events = app.state.context.state_store.recent_audit_events(limit=limit, run_id=run_id)
        return {"run": run, "events": events}

    return app

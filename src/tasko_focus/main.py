"""
Tasko Focus API: FastAPI local server for the focus timer and cosmic rewards

This server provides:
- A resumable countdown timer ticking once per second
- Reward ledger of accumulated focus minutes and unlocked tiers
- Audit trail of timer and reward events
- Site-blocking filter for the browser-extension companion
"""

import logging
from collections import deque
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Deque, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .blocking import BlockedResource, SiteBlocker, collect_blocking_update
from .config import FocusConfig, load_config
from .rewards import load_reward_tiers
from .service import FocusService
from .state_store import StateStore

logger = logging.getLogger("tasko_focus")


# ============ Server-side Log Buffer ============

class LogBufferHandler(logging.Handler):
    """Logging handler that keeps the most recent records in a circular buffer."""

    def __init__(self, maxlen: int = 100):
        super().__init__()
        self.buffer: Deque[dict] = deque(maxlen=maxlen)

    def emit(self, record: logging.LogRecord):
        try:
            self.buffer.append({
                "timestamp": datetime.fromtimestamp(record.created).strftime("%H:%M:%S"),
                "level": record.levelname,
                "logger": record.name,
                "message": self.format(record),
            })
        except Exception:
            self.handleError(record)


def configure_logging(config: FocusConfig) -> LogBufferHandler:
    """Attach a fresh buffer handler to our logger and the server loggers."""
    logger.setLevel(config.log_level)
    handler = LogBufferHandler(config.log_buffer_size)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter("%(message)s"))
    for name in ("tasko_focus", "uvicorn", "fastapi"):
        target = logging.getLogger(name)
        for existing in [h for h in target.handlers if isinstance(h, LogBufferHandler)]:
            target.removeHandler(existing)
        target.addHandler(handler)
    return handler


# ============ Pydantic Models ============

class AdjustRequest(BaseModel):
    minutes: int


class DurationRequest(BaseModel):
    seconds: int


class AccumulateRequest(BaseModel):
    minutes: int


class TimerResponse(BaseModel):
    durationSeconds: int
    remainingSeconds: int
    isRunning: bool
    startedAtEpochMillis: Optional[int]
    phase: str
    display: str


class RewardResponse(BaseModel):
    id: str
    name: str
    description: str
    requiredMinutes: int
    imageUrl: str
    unlocked: bool


class LedgerResponse(BaseModel):
    totalFocusMinutes: int
    unlockedCount: int
    rewardCount: int
    nextRewardId: Optional[str]
    minutesToNext: Optional[int]
    rewards: List[RewardResponse]


class AccumulateResponse(BaseModel):
    newlyUnlocked: List[str]
    ledger: LedgerResponse


class UnlockResponse(BaseModel):
    changed: bool
    ledger: LedgerResponse


class BlockedResourceModel(BaseModel):
    id: str = ""
    url: str
    name: str = ""
    type: str = "website"


class BlockingUpdateRequest(BaseModel):
    resources: List[BlockedResourceModel] = Field(default_factory=list)
    isBlocking: bool = False


class TaskRecord(BaseModel):
    id: str
    timerStatus: str = "not_started"
    blocked_resources: List[str] = Field(default_factory=list)


class TaskBlockingRequest(BaseModel):
    tasks: List[TaskRecord]
    resources: List[BlockedResourceModel]


class BlockingStatusResponse(BaseModel):
    isBlocking: bool
    resources: List[BlockedResourceModel]


def _to_resources(models: List[BlockedResourceModel]) -> List[BlockedResource]:
    return [BlockedResource(id=m.id, url=m.url, name=m.name, type=m.type) for m in models]


def _blocking_status(blocker: SiteBlocker) -> BlockingStatusResponse:
    return BlockingStatusResponse(
        isBlocking=blocker.is_blocking,
        resources=[BlockedResourceModel(**r.to_dict()) for r in blocker.resources],
    )


def create_app(config: Optional[FocusConfig] = None, scheduler: Optional[AsyncIOScheduler] = None) -> FastAPI:
    """Build the API with its own store, service, scheduler and blocker."""
    config = config or load_config()
    scheduler = scheduler or AsyncIOScheduler()
    log_handler = configure_logging(config)

    store = StateStore(config.db_path)
    service = FocusService(
        store,
        scheduler,
        tiers=load_reward_tiers(config.rewards_file),
        default_duration_seconds=config.default_duration_seconds,
        tick_seconds=config.tick_seconds,
    )
    blocker = SiteBlocker()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        await store.init()
        await service.restore()
        service.register_maintenance_jobs()
        scheduler.start()
        logger.info(f"Focus API started (db: {config.db_path})")
        yield
        # Shutdown
        scheduler.shutdown(wait=False)
        logger.info("Focus API stopped")

    app = FastAPI(
        title="Tasko Focus API",
        description="Local focus timer and cosmic reward ledger",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.service = service
    app.state.blocker = blocker
    app.state.log_handler = log_handler

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _service(request: Request) -> FocusService:
        return request.app.state.service

    def _timer_response(svc: FocusService) -> TimerResponse:
        return TimerResponse(**svc.timer.to_export_dict())

    def _ledger_response(svc: FocusService) -> LedgerResponse:
        return LedgerResponse(**svc.snapshot().to_dict())

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    # ============ Timer Endpoints ============

    @app.get("/api/timer", response_model=TimerResponse)
    async def get_timer(request: Request):
        return _timer_response(_service(request))

    @app.post("/api/timer/start", response_model=TimerResponse)
    async def start_timer(request: Request):
        svc = _service(request)
        await svc.start()
        return _timer_response(svc)

    @app.post("/api/timer/pause", response_model=TimerResponse)
    async def pause_timer(request: Request):
        svc = _service(request)
        await svc.pause()
        return _timer_response(svc)

    @app.post("/api/timer/reset", response_model=TimerResponse)
    async def reset_timer(request: Request):
        svc = _service(request)
        await svc.reset()
        return _timer_response(svc)

    @app.post("/api/timer/adjust", response_model=TimerResponse)
    async def adjust_timer(body: AdjustRequest, request: Request):
        svc = _service(request)
        await svc.adjust_time(body.minutes)
        return _timer_response(svc)

    @app.post("/api/timer/duration", response_model=TimerResponse)
    async def set_timer_duration(body: DurationRequest, request: Request):
        svc = _service(request)
        await svc.set_duration(body.seconds)
        return _timer_response(svc)

    # ============ Reward Endpoints ============

    @app.get("/api/rewards", response_model=LedgerResponse)
    async def get_rewards(request: Request):
        return _ledger_response(_service(request))

    @app.post("/api/rewards/accumulate", response_model=AccumulateResponse)
    async def accumulate_minutes(body: AccumulateRequest, request: Request):
        svc = _service(request)
        unlocked = await svc.accumulate(body.minutes)
        return AccumulateResponse(newlyUnlocked=unlocked, ledger=_ledger_response(svc))

    @app.post("/api/rewards/{reward_id}/unlock", response_model=UnlockResponse)
    async def unlock_reward(reward_id: str, request: Request):
        svc = _service(request)
        changed = await svc.unlock_reward(reward_id)
        return UnlockResponse(changed=changed, ledger=_ledger_response(svc))

    # ============ Events / Logs ============

    @app.get("/api/events")
    async def get_events(request: Request, limit: int = 50):
        limit = max(1, min(limit, 500))
        return await _service(request).store.recent_events(limit)

    @app.get("/api/logs")
    async def get_logs(request: Request):
        return list(request.app.state.log_handler.buffer)

    # ============ Blocking Endpoints ============

    @app.post("/api/blocking", response_model=BlockingStatusResponse)
    async def update_blocking(body: BlockingUpdateRequest, request: Request):
        blocker: SiteBlocker = request.app.state.blocker
        blocker.update(_to_resources(body.resources), body.isBlocking)
        return _blocking_status(blocker)

    @app.post("/api/blocking/tasks", response_model=BlockingStatusResponse)
    async def update_blocking_from_tasks(body: TaskBlockingRequest, request: Request):
        blocker: SiteBlocker = request.app.state.blocker
        update = collect_blocking_update(
            [task.model_dump() for task in body.tasks],
            _to_resources(body.resources),
        )
        blocker.update(update["resources"], update["isBlocking"])
        return _blocking_status(blocker)

    @app.get("/api/blocking/check")
    async def check_blocking(url: str, request: Request):
        blocker: SiteBlocker = request.app.state.blocker
        return {"url": url, "blocked": blocker.is_blocked(url)}

    return app


def main():
    import uvicorn

    config = load_config()
    uvicorn.run(create_app(config), host=config.host, port=config.port)


if __name__ == "__main__":
    main()

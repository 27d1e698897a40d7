"""
Relay Server

FastAPI host that owns the refresh cycle, the exclude lists, and the approval
flow around the ingestion core.

Endpoints:
- GET /health: Health check
- POST /sync: Fetch signals for a time window
- POST /signals/{signal_id}/archive: Hide a signal for good
- POST /signals/{signal_id}/block: Block a signal
- POST /suggest: Propose tasks for a piece of text
- POST /synthesize: Cluster a window of signals into a prioritized plan
- POST /approve: Write a proposed task to Asana and archive its signal
- GET /projects: Asana project names
- POST /tasks/{task_id}/complete: Complete an Asana task

Cycle:
1. Build the reference store once per process
2. Search Slack for the window and normalize the matches
3. Merge assigned Asana tasks
4. Drop archived/blocked ids, newest first
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from fastapi import FastAPI, HTTPException
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from ..common.config import RelayConfig, ensure_directories, load_config, require_slack_token
from ..common.errors import AiHardFailError, ConnectivityError
from ..common.llm_client import LLMClient
from ..common.schemas import NormalizedSignal, ProposedTask
from ..ingest import ReferenceStore, ReferenceStoreBuilder, SignalFetcher, SlackClient
from ..suggest import SuggestionEngine, UserProfile
from ..tracker import AsanaAdapter
from .approval import approve_task
from .exclude_list import ARCHIVED, BLOCKED, ExcludeList

logger = logging.getLogger("relay.orchestrator.server")


# Global state
config: Optional[RelayConfig] = None
slack_client: Optional[SlackClient] = None
store_builder: Optional[ReferenceStoreBuilder] = None
store: Optional[ReferenceStore] = None
fetcher: Optional[SignalFetcher] = None
tracker: Optional[AsanaAdapter] = None
engine: Optional[SuggestionEngine] = None
exclude_list: Optional[ExcludeList] = None

_store_lock = asyncio.Lock()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize components on startup"""
    global config, slack_client, store_builder, store, fetcher, tracker, engine, exclude_list

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logger.info("Starting up...")

    ensure_directories()
    config = load_config()
    token = require_slack_token(config)

    slack_client = SlackClient(
        token,
        timeout=config.slack.timeout,
        page_delay=config.slack.page_delay,
    )
    store_builder = ReferenceStoreBuilder(slack_client)
    fetcher = SignalFetcher(
        slack_client,
        search_query=config.slack.search_query,
        write_back_authors=config.slack.write_back_authors,
    )
    store = None

    if config.asana.token:
        tracker = AsanaAdapter(config.asana.token, timeout=config.asana.timeout)
        logger.info("Asana adapter ready")
    else:
        tracker = None
        logger.info("Asana adapter disabled (no token)")

    llm_client = LLMClient(
        provider=config.llm.provider,
        google_api_key=config.llm.google_api_key or None,
        anthropic_api_key=config.llm.anthropic_api_key or None,
        openai_api_key=config.llm.openai_api_key or None,
    )
    engine = SuggestionEngine.from_llm_client(llm_client, config.llm.models)
    logger.info("Suggestion cascade: %s", ", ".join(engine.models))

    exclude_list = ExcludeList(config.exclude_list_path)

    logger.info("Ready")

    yield

    logger.info("Shutting down...")
    await slack_client.close()
    if tracker:
        await tracker.close()


app = FastAPI(
    title="Relay",
    description="Signal ingestion and AI-assisted task triage",
    version="0.1.0",
    lifespan=lifespan,
)


# =============================================================================
# Request/Response Models
# =============================================================================

class SyncRequest(BaseModel):
    """Sync window; defaults to the configured number of hours before now"""
    hours: Optional[int] = None
    include_tasks: bool = True


class SuggestRequest(BaseModel):
    """Text to analyze; categories default to the Asana project list"""
    text: str
    categories: Optional[List[str]] = None


class UserProfileRequest(BaseModel):
    """Who the plan is for"""
    name: str
    title: str = ""
    role_description: str = ""
    key_priorities: List[str] = []
    ignored_topics: List[str] = []


class SynthesizeRequest(BaseModel):
    """Window to plan from; signal_ids narrows it to a selection"""
    hours: Optional[int] = None
    signal_ids: Optional[List[str]] = None
    categories: Optional[List[str]] = None
    profile: Optional[UserProfileRequest] = None
    include_tasks: bool = True
    include_threads: bool = True


class ApproveRequest(BaseModel):
    """A reviewed task for a signal"""
    signal_id: str
    task: ProposedTask


# =============================================================================
# Helpers
# =============================================================================

async def ensure_store() -> ReferenceStore:
    """Build the reference store on first use and keep it for the process."""
    global store

    if store is not None:
        return store
    async with _store_lock:
        if store is None:
            if not store_builder:
                raise HTTPException(status_code=503, detail="Slack not initialized")
            try:
                store = await store_builder.build()
            except ConnectivityError as e:
                raise HTTPException(status_code=503, detail=f"Build failed: {e}")
    return store


async def collect_signals(
    hours: Optional[int], include_tasks: bool
) -> Tuple[ReferenceStore, List[NormalizedSignal], datetime, datetime]:
    """Fetch, merge, and filter one window, newest first."""
    if not fetcher:
        raise HTTPException(status_code=503, detail="Fetcher not initialized")
    excludes = _require_exclude_list()

    current = await ensure_store()
    hours = hours or (config.server.sync_window_hours if config else 72)
    end = datetime.now(timezone.utc)
    start = end - timedelta(hours=hours)

    signals = list(await fetcher.fetch(current, start, end))
    if include_tasks and tracker:
        signals.extend(await tracker.list_assigned_items())

    visible = excludes.filter(signals)
    visible.sort(key=lambda s: s.created, reverse=True)
    return current, visible, start, end


def _require_tracker() -> AsanaAdapter:
    if not tracker:
        raise HTTPException(status_code=503, detail="Asana not configured")
    return tracker


def _require_exclude_list() -> ExcludeList:
    if not exclude_list:
        raise HTTPException(status_code=503, detail="Exclude lists not initialized")
    return exclude_list


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/health")
async def health():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "relay",
        "store_ready": store is not None,
        "tracker_available": tracker is not None,
        "models": engine.models if engine else [],
    }


@app.post("/sync")
async def sync(request: SyncRequest):
    """Fetch, merge, and filter signals for one window."""
    _, visible, start, end = await collect_signals(request.hours, request.include_tasks)

    return {
        "count": len(visible),
        "window": {"start": start.isoformat(), "end": end.isoformat()},
        "signals": [s.model_dump(mode="json") for s in visible],
    }


@app.post("/signals/{signal_id}/archive")
async def archive_signal(signal_id: str):
    added = _require_exclude_list().add(ARCHIVED, signal_id)
    return {"status": "archived", "signal_id": signal_id, "changed": added}


@app.post("/signals/{signal_id}/block")
async def block_signal(signal_id: str):
    added = _require_exclude_list().add(BLOCKED, signal_id)
    return {"status": "blocked", "signal_id": signal_id, "changed": added}


@app.post("/suggest")
async def suggest(request: SuggestRequest):
    """
    Propose tasks for a piece of text.

    Hard failures (bad credentials, malformed model output) are returned as
    HTTP 502 with the backend message untouched.
    """
    if not engine:
        raise HTTPException(status_code=503, detail="Suggestion engine not initialized")

    categories = request.categories
    if categories is None:
        categories = await tracker.list_categories() if tracker else []

    try:
        result = await run_in_threadpool(engine.analyze_signal, request.text, categories)
    except AiHardFailError as e:
        raise HTTPException(status_code=502, detail=str(e))

    return {
        "exhausted": result.exhausted,
        "model": result.model,
        "suggestions": [s.model_dump(mode="json") for s in result.suggestions],
    }


@app.post("/synthesize")
async def synthesize(request: SynthesizeRequest):
    """
    Cluster the window's signals into major tasks with subtasks.

    Thread replies are fetched for signals that have them and passed to the
    model as context. Errors map the same way as /suggest.
    """
    if not engine:
        raise HTTPException(status_code=503, detail="Suggestion engine not initialized")

    current, signals, _, _ = await collect_signals(request.hours, request.include_tasks)
    if request.signal_ids is not None:
        wanted = set(request.signal_ids)
        signals = [s for s in signals if s.id in wanted]

    threads = await fetcher.fetch_threads(signals, current) if request.include_threads else {}

    categories = request.categories
    if categories is None:
        categories = await tracker.list_categories() if tracker else []

    profile = UserProfile(**request.profile.model_dump()) if request.profile else None

    try:
        result = await run_in_threadpool(
            engine.synthesize_workload, signals, categories, profile, threads
        )
    except AiHardFailError as e:
        raise HTTPException(status_code=502, detail=str(e))

    return {
        "exhausted": result.exhausted,
        "model": result.model,
        "signal_count": len(signals),
        "suggestions": [s.model_dump(mode="json") for s in result.suggestions],
    }


@app.post("/approve")
async def approve(request: ApproveRequest):
    result = await approve_task(
        _require_tracker(), _require_exclude_list(), request.signal_id, request.task
    )
    if result.task_id is None:
        raise HTTPException(status_code=502, detail="Task could not be created")
    return {
        "status": "approved" if result.ok else "partial",
        "task_id": result.task_id,
        "subtasks_created": result.subtasks_created,
        "subtasks_failed": result.subtasks_failed,
    }


@app.get("/projects")
async def projects():
    return {"projects": await _require_tracker().list_categories()}


@app.post("/tasks/{task_id}/complete")
async def complete_task(task_id: str):
    if not await _require_tracker().complete_item(task_id):
        raise HTTPException(status_code=502, detail="Task could not be completed")
    return {"status": "completed", "task_id": task_id}


# =============================================================================
# CLI Entry Point
# =============================================================================

def run_server():
    """Run the Relay server"""
    import uvicorn

    config = load_config()
    port = config.server.port

    logger.info("Starting server on port %d", port)
    uvicorn.run(
        "relay.orchestrator.server:app",
        host="127.0.0.1",
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    run_server()

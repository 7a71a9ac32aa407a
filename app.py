"""
Intercom-Asana Bridge
FastAPI application linking Intercom tickets to Asana tasks.

Serves the Intercom Canvas Kit app (/initialize, /submit) and receives
webhooks from both systems. Runs locally under uvicorn and on Vercel
through api/index.py.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from functools import partial
from typing import Any, Dict, Optional

from fastapi import BackgroundTasks, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

import canvas
from asana_client import AsanaClient
from canvas import SubmitAction
from config import IS_SERVERLESS, Config, load_config, setup_logging
from intercom_client import IntercomClient
from sync_engine import SyncEngine

VERSION = "1.0.0"

setup_logging()
logger = logging.getLogger(__name__)

# Global engine, None when configuration is incomplete
sync_engine: Optional[SyncEngine] = None
startup_error: Optional[str] = None


def build_engine(cfg: Config) -> SyncEngine:
    """Wire clients and the reconciler from a validated config"""
    intercom = IntercomClient(cfg.intercom, timeout=cfg.timeout, max_retries=cfg.max_retries)
    asana = AsanaClient(cfg.asana, timeout=cfg.timeout, max_retries=cfg.max_retries)
    return SyncEngine(cfg, intercom, asana, max_workers=int(cfg.sync.get("max_workers", 4)))


async def run_blocking(fn, *args, **kwargs):
    """Run a blocking engine call off the event loop"""
    return await asyncio.get_event_loop().run_in_executor(None, partial(fn, *args, **kwargs))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown"""
    global sync_engine, startup_error

    try:
        cfg = load_config()
        sync_engine = build_engine(cfg)
        logger.info("✓ Sync engine initialized")
    except ValueError as e:
        startup_error = str(e)
        logger.error(f"Failed to initialize sync engine: {e}")

    if sync_engine:
        for name, api in (("Intercom", sync_engine.intercom), ("Asana", sync_engine.asana)):
            if await run_blocking(api.test_connection):
                logger.info(f"✓ {name} connection OK")
            else:
                logger.warning(f"⚠ {name} connection failed, check the access token")

        # Warm the field schema cache; missing critical fields only warn
        for project_id in sync_engine.known_projects():
            await run_blocking(sync_engine.field_mapper.get, project_id)

    logger.info(f"✓ Intercom-Asana bridge started (serverless: {IS_SERVERLESS})")

    yield

    logger.info("✓ Intercom-Asana bridge stopped")


app = FastAPI(
    title="Intercom-Asana Bridge",
    description="Links Intercom tickets with Asana tasks",
    version=VERSION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Pydantic models
class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    version: str
    sync_engine: bool


async def read_json(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def engine_unavailable() -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"status": "error", "message": "Sync engine not available", "detail": startup_error}
    )


@app.get("/")
async def root():
    return {"service": "Intercom-Asana Bridge", "version": VERSION, "status": "running"}


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint"""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(),
        version=VERSION,
        sync_engine=sync_engine is not None
    )


# ============================================
# INTERCOM CANVAS KIT
# ============================================

async def state_card(conversation_id: Optional[str]) -> Dict[str, Any]:
    state = await run_blocking(sync_engine.link_state, conversation_id)
    if state.get("linked"):
        return canvas.linked_card(state["task_id"], state.get("task_status"))
    return canvas.initial_card()


@app.post("/initialize")
async def initialize(request: Request):
    """Initial card for the Intercom inbox app"""
    body = await read_json(request)
    conversation_id = (body.get("conversation") or {}).get("id")
    logger.info(f"Initialize request for conversation {conversation_id}")

    if not sync_engine:
        return canvas.error_card("Integration is not configured", title="Asana Unavailable")
    return await state_card(conversation_id)


@app.post("/submit")
async def submit(request: Request):
    """Button clicks from the Intercom inbox app"""
    body = await read_json(request)
    conversation_id = (body.get("conversation") or {}).get("id")
    contact = body.get("contact") or body.get("customer") or {}
    action = canvas.parse_action(body.get("component_id"))
    logger.info(f"Submit '{body.get('component_id')}' for conversation {conversation_id}")

    if not sync_engine:
        return canvas.error_card("Integration is not configured", title="Asana Unavailable")

    if action == SubmitAction.CREATE_TASK:
        result = await run_blocking(sync_engine.create_task, conversation_id, contact)
        if result["status"] == "created":
            return canvas.created_card(result["task_name"], result["task_id"],
                                       result.get("attachment_summary"), result.get("synced_fields", 0))
        if result["status"] == "already_exists":
            return canvas.already_exists_card(result["task_id"])
        return canvas.error_card(result.get("error"))

    if action == SubmitAction.SYNC_FILES:
        result = await run_blocking(sync_engine.sync_files, conversation_id)
        if result["status"] == "synced":
            return canvas.files_synced_card(result["task_id"], result.get("attachment_summary"))
        if result["status"] == "not_linked":
            return canvas.error_card("No Asana task is linked to this ticket yet", title="Nothing to Sync")
        return canvas.error_card(result.get("error"), title="Error Syncing Attachments")

    if action == SubmitAction.REFRESH:
        sync_engine.field_mapper.invalidate(sync_engine.default_project)
        return await state_card(conversation_id)

    return canvas.initial_card()


# ============================================
# WEBHOOK ENDPOINTS
# ============================================

@app.post("/intercom-webhook")
async def intercom_webhook(request: Request, background_tasks: BackgroundTasks):
    """
    Intercom notifications: admin notes and ticket state changes.
    Always acknowledged with 200 before any relay work so Intercom does not retry.
    """
    body = await read_json(request)
    topic = body.get("topic")
    logger.info(f"📥 Received Intercom webhook: {topic}")

    if not sync_engine:
        return {"status": "ignored", "reason": "sync engine not available"}
    if not body:
        return {"status": "ignored", "reason": "empty payload"}

    background_tasks.add_task(process_intercom_webhook, sync_engine, body)
    return {"status": "accepted", "topic": topic}


def process_intercom_webhook(engine: SyncEngine, body: Dict[str, Any]) -> None:
    result = engine.handle_intercom_webhook(body)
    logger.info(f"Intercom webhook {body.get('topic')} → {result.get('status')}")


@app.post("/asana-webhook")
async def asana_webhook(request: Request, background_tasks: BackgroundTasks):
    """
    Asana webhook events.
    The first request of a new webhook carries X-Hook-Secret, which must be
    echoed back for Asana to activate it.
    """
    hook_secret = request.headers.get("X-Hook-Secret")
    if hook_secret:
        logger.info("✓ Asana webhook handshake received")
        return Response(status_code=200, headers={"X-Hook-Secret": hook_secret})

    if not sync_engine:
        return {"status": "ignored", "reason": "sync engine not available"}

    body = await read_json(request)
    events = body.get("events") or []
    logger.info(f"📥 Received {len(events)} Asana event(s)")
    if events:
        background_tasks.add_task(sync_engine.handle_asana_events, events)
    return {"status": "accepted", "events": len(events)}


# ============================================
# OPERATIONAL ENDPOINTS
# ============================================

@app.get("/asana-custom-fields")
async def asana_custom_fields(refresh: bool = False):
    """Current Asana custom field mappings, re-fetched when refresh=true"""
    if not sync_engine:
        return engine_unavailable()
    return await run_blocking(sync_engine.mapping_report, refresh)


@app.get("/webhook-info")
async def webhook_info():
    return {
        "intercom": {
            "endpoint": "/intercom-webhook",
            "topics": ["conversation.admin.noted", "ticket.note.created", "ticket.state.updated"],
        },
        "asana": {
            "endpoint": "/asana-webhook",
            "handshake": "X-Hook-Secret is echoed back on the first request",
            "events": ["story added (comment_added)", "task changed (custom_fields, completed)"],
        },
        "canvas": {
            "initialize": "/initialize",
            "submit": "/submit",
            "actions": [a.value for a in SubmitAction],
        },
        "sync_engine": sync_engine is not None,
        "in_memory_links": sync_engine.links.mapping_count() if sync_engine else 0,
    }


def start_server():
    """Start the server manually"""
    import uvicorn
    print("Starting Intercom-Asana Bridge...")
    print("API Documentation at: http://localhost:8004/docs")
    print("Press Ctrl+C to stop the server")
    try:
        uvicorn.run(app, host="0.0.0.0", port=8004)
    except KeyboardInterrupt:
        print("\nServer stopped")


if __name__ == "__main__":
    start_server()

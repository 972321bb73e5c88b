# services/api/app.py
from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from mangum import Mangum
from pydantic import BaseModel, Field

from services.common.pipeline import FALLBACK_HEADER, fallback_header_value
from services.workers.graph.analyses import SourcePayload
from services.workers.graph.core.charts import ChartRenderer
from services.workers.graph.core.classifier import TaskClassifier, build_classifier
from services.workers.graph.core.config import Settings
from services.workers.graph.core.errors import ExtractionError, TaskFoundryError, TaskTimeoutError
from services.workers.graph.core.utils import _to_jsonable
from services.workers.graph.graph import run_task
from services.workers.graph.io.columnar import ColumnarStore, QueryCollaborator
from services.workers.graph.io.fetch import HttpPageFetcher, PageFetcher

# ---- Logging ----
logger = logging.getLogger("taskfoundry.api")
if not logger.handlers:
    logging.basicConfig(level=logging.INFO)
logger.setLevel(logging.INFO)

# ---- Collaborators (replaced in tests) ----
settings: Settings = Settings.from_env()
classifier: Optional[TaskClassifier] = None
page_fetcher: Optional[PageFetcher] = None
renderer: Optional[ChartRenderer] = None
columnar_store: Optional[QueryCollaborator] = None


def get_classifier() -> TaskClassifier:
    global classifier
    if classifier is None:
        classifier = build_classifier(settings)
    return classifier


def get_columnar_store() -> QueryCollaborator:
    # opened on first court query, closed by the lifespan hook
    global columnar_store
    if columnar_store is None:
        columnar_store = ColumnarStore(timeout=settings.query_timeout)
    return columnar_store


@asynccontextmanager
async def lifespan(_app: FastAPI):
    global columnar_store
    get_columnar_store()
    logger.info("api started", extra={"llm_enabled": settings.llm_enabled})
    try:
        yield
    finally:
        store, columnar_store = columnar_store, None
        if isinstance(store, ColumnarStore):
            await store.close()
        logger.info("api stopped")


# ---- App ----
app = FastAPI(title="TaskFoundry API", lifespan=lifespan)

# --- CORS for local dashboard ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["*"],
    allow_credentials=False,
)


# ---- Models ----
class TaskRequest(BaseModel):
    """Request payload for an analysis task."""
    task: str = Field(min_length=1)
    csv: str | None = None
    filename: str | None = None


# ---- Routes ----
@app.get("/health")
def health():
    return {"ok": True, "llmEnabled": settings.llm_enabled}


@app.post("/api/")
async def analyze(body: TaskRequest):
    task_id = str(uuid.uuid4())
    payload = None
    if body.csv is not None:
        payload = SourcePayload(body=body.csv.encode("utf-8"), filename=body.filename or "dataset.csv")

    logger.info("task received", extra={"task_id": task_id, "has_csv": payload is not None})
    try:
        result = await run_task(
            body.task,
            payload=payload,
            settings=settings,
            classifier=get_classifier(),
            fetcher=page_fetcher or HttpPageFetcher(timeout=settings.scrape_timeout),
            store=get_columnar_store(),
            renderer=renderer,
        )
    except ExtractionError as exc:
        logger.warning("task failed: %s", exc, extra={"task_id": task_id, "reason": exc.reason})
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except TaskTimeoutError as exc:
        logger.error("task timed out", extra={"task_id": task_id})
        raise HTTPException(status_code=504, detail=str(exc)) from exc
    except TaskFoundryError as exc:
        logger.exception("task failed", extra={"task_id": task_id})
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    headers = {"x-task-id": task_id}
    if result.fallbacks:
        headers[FALLBACK_HEADER] = fallback_header_value(result.fallbacks)
    logger.info(
        "task answered",
        extra={"task_id": task_id, "data_source": result.intent.data_source, "fallbacks": result.fallbacks},
    )
    return JSONResponse(content=_to_jsonable(result.answer), headers=headers)


# ---- Middleware ----
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    try:
        response = await call_next(request)
        duration_ms = int((time.time() - start) * 1000)
        logger.info(
            "request completed",
            extra={
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
                "request_id": request_id,
            },
        )
        response.headers.setdefault("x-request-id", request_id)
        return response
    except Exception:
        duration_ms = int((time.time() - start) * 1000)
        logger.exception(
            "request failed",
            extra={
                "path": request.url.path,
                "method": request.method,
                "request_id": request_id,
                "duration_ms": duration_ms,
            },
        )
        raise


# ✅ GLOBAL Lambda handler (must be at module scope)
handler = Mangum(app)

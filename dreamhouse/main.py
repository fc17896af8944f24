import os
import time
import logging
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI

from . import metrics
from .pipeline.routes import (
    capability_router,
    design_router,
    get_studio,
    misc_router,
    project_router,
)

load_dotenv()

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("dreamhouse")


@asynccontextmanager
async def lifespan(app: FastAPI):
    metrics.set_gauge("start_time", time.time())
    studio = get_studio()
    state = await studio.gate.probe()
    logger.info(f"Design service starting — video capability {state.value}")
    yield
    for task in studio.pipeline.background_tasks:
        task.cancel()
    studio.animator.cancel_all()
    logger.info("Design service shutting down...")


app = FastAPI(title="Dream House Designer", lifespan=lifespan)
app.include_router(design_router)
app.include_router(project_router)
app.include_router(capability_router)
app.include_router(misc_router)


@app.get("/health")
def health_check():
    """Verify the service is running and keys are configured."""
    gemini_key = os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY", "")
    return {
        "status": "ok",
        "gemini_api_key_set": bool(gemini_key),
        "gemini_key_prefix": gemini_key[:8] + "..." if gemini_key else "MISSING",
        "video_capability": get_studio().gate.state.value,
    }


@app.get("/metrics")
def metrics_endpoint():
    """Return a snapshot of all service metrics."""
    studio = get_studio()
    metrics.set_gauge("active_runs", len(studio.pipeline.background_tasks))
    metrics.set_gauge("committed_projects", len(studio.store.list_projects()))
    return metrics.get_snapshot()


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    uvicorn.run("dreamhouse.main:app", host="0.0.0.0", port=port, reload=True)

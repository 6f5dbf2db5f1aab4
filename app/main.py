import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

load_dotenv()

from app.config import get_settings  # noqa: E402
from app.db.db import init_db  # noqa: E402
from app.routers import admin, auth, items, profile  # noqa: E402
from app.utils.pipeline import build_pipeline  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()

    # one queue per process, shared by every request
    audit_log, queue, trigger = build_pipeline(get_settings())
    app.state.audit_log = audit_log
    app.state.notification_queue = queue
    app.state.match_trigger = trigger

    yield

    abandoned = queue.clear_queue()
    if abandoned:
        logger.warning(f"Shutting down with {abandoned} unsent notification(s)")


app = FastAPI(title="Campus Lost & Found API", lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(profile.router, prefix="/profile", tags=["Profile"])
app.include_router(items.router, prefix="/items", tags=["Items"])
app.include_router(admin.router, prefix="/admin", tags=["Admin"])


@app.get("/")
def root():
    return {"status": "ok"}

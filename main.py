import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from api.v1.router import api_router
from config import settings
from services.cache import TTLCache
from services.db import init_models
from services.dispatch import Dispatcher
from services.timeline_service import TimelineService

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_models()
    # one cache per process, shared by every request
    app.state.timeline_service = TimelineService(
        TTLCache(settings.timeline_cache_ttl_seconds),
        default_meal_time=settings.default_meal_time,
    )
    app.state.dispatcher = Dispatcher.from_settings()
    yield


app = FastAPI(title="Meal Timeline API", version="1.0.0", lifespan=lifespan)

# CORS (customer / chef / driver apps poll from their own origins)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")

@app.get("/health", tags=["meta"])
def health() -> dict[str, str]:
    return {"status": "ok", "env": settings.env_name}

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from academy.core.cache import get_cache
from academy.core.config import settings
from academy.core.database import engine, Base, SessionLocal
from academy.core.rate_limit_middleware import RateLimitMiddleware
from academy.api.v1.router import api_router
from academy.services.subscription_service import SubscriptionService
import academy.models  # noqa: F401  registers every table on Base.metadata
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

__version__ = "1.0.0"

Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    db = SessionLocal()
    try:
        created = SubscriptionService().seed_plans_if_empty(db)
        if created:
            logger.info(f"Startup: seeded {created} subscription plans")
    finally:
        db.close()

    if not get_cache().ping():
        logger.warning("Startup: Redis unreachable, rate limiting and the scheduler lock are disabled")

    yield


app = FastAPI(
    title="Trading Academy API",
    version=__version__,
    debug=settings.debug,
    redirect_slashes=False,
    lifespan=lifespan,
)

# CORS goes on before rate limiting so preflight requests are never throttled
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RateLimitMiddleware)

app.include_router(api_router, prefix=settings.api_v1_str)


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

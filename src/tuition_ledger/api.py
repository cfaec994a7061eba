"""FastAPI application: provider webhook and admin routes."""

import logging
from contextlib import asynccontextmanager

from fastapi import BackgroundTasks, Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .auth import limiter
from .database import init_db, close_db, get_async_session_factory
from .notifications import Notifier, dispatch_notifications, get_notifier
from .reconciliation.api import router as admin_router
from .signature import SignatureVerifier
from .webhooks import WebhookPipeline

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield
    await close_db()


app = FastAPI(title="Tuition Payment Core", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.include_router(admin_router)


def get_webhook_pipeline() -> WebhookPipeline:
    return WebhookPipeline(
        session_factory=get_async_session_factory(),
        verifier=SignatureVerifier.from_env(),
    )


@app.post("/webhooks/paystack")
async def paystack_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    pipeline: WebhookPipeline = Depends(get_webhook_pipeline),
    notifier: Notifier = Depends(get_notifier),
):
    # Signature is computed over the raw bytes, so read them before any parsing
    body = await request.body()
    outcome = await pipeline.handle(body, dict(request.headers))
    if outcome.notifications:
        background_tasks.add_task(dispatch_notifications, notifier, outcome.notifications)
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)

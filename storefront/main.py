import contextlib
import os
import logging

from fastapi import FastAPI, Request, Header
from fastapi.responses import JSONResponse
import uvicorn
from starlette.concurrency import run_in_threadpool

from storefront import config
from storefront.database import Base, engine, SessionLocal
from storefront.exceptions import MissingSignatureError, RateLimitedError, StorefrontError
from storefront.rate_limit import RateLimiter, rate_limit_headers
from storefront.reconciler import FulfillmentReconciler
from storefront.routes import router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    limiter = app.state.checkout_rate_limiter
    limiter.start_sweeper(config.RATE_LIMIT_SWEEP_SECONDS)
    yield
    limiter.stop_sweeper()


app = FastAPI(title="Storefront Checkout Service", lifespan=lifespan)
app.state.checkout_rate_limiter = RateLimiter(
    max_requests=config.RATE_LIMIT_MAX_REQUESTS,
    window_ms=config.RATE_LIMIT_WINDOW_MS,
)

app.include_router(router)

Base.metadata.create_all(bind=engine)


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    content = {"error": exc.message, "code": exc.code}
    if exc.details is not None:
        content["details"] = exc.details
    headers = None

    if isinstance(exc, RateLimitedError):
        content = {
            "error": "Too many requests",
            "code": exc.code,
            "message": exc.message,
            "retryAfter": exc.retry_after,
        }
        headers = {"Retry-After": str(exc.retry_after), **rate_limit_headers(exc.decision)}

    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


@app.get("/api/stripe/webhook")
def stripe_webhook_health():
    return {"ok": True, "route": "stripe/webhook"}


@app.post("/api/stripe/webhook")
async def stripe_webhook(request: Request, stripe_signature: str = Header(None)):
    if not stripe_signature:
        # Fail before reading the body.
        raise MissingSignatureError()
    # Raw bytes only: re-serialising parsed JSON would break the signature.
    payload = await request.body()
    reconciler = FulfillmentReconciler(SessionLocal)
    # Stripe and database calls block; run them in the threadpool.
    return await run_in_threadpool(reconciler.handle, payload, stripe_signature, config.webhook_secret())


def run():
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))


if __name__ == "__main__":
    run()

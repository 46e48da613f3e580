"""FoodRun FastAPI application.

Web server that processes delivery commands synchronously via HTTP. Each
request is wrapped in the delivery domain context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# Event handlers run in this process after each commit, in every environment:
# the fan-out bus and the SSE connections it feeds live here.
from delivery.domain import delivery  # noqa: E402
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

delivery.init()

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="FoodRun API",
    description="Food delivery order coordination — orders, couriers, payments and live updates",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the Protean domain context for each request."""
    with delivery.domain_context():
        response = await call_next(request)
    return response


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from delivery.api import (  # noqa: E402
    courier_router,
    order_router,
    payment_router,
    realtime_router,
    register_error_handlers,
)

app.include_router(order_router)
app.include_router(payment_router)
app.include_router(courier_router)
app.include_router(realtime_router)
register_error_handlers(app)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "domains": {"delivery": {"name": delivery.name}},
        }
    )

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bottleworks.config import settings
from bottleworks.middleware.exceptions import register_exception_handlers
from bottleworks.routers import batches, health, orders, payments

app = FastAPI(
    title="Bottleworks",
    description="Wholesale bottling back office: orders, production batches and payments",
    version="0.1.0",
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(orders.router, prefix="/api/orders", tags=["orders"])
app.include_router(batches.router, prefix="/api/batches", tags=["batches"])
app.include_router(payments.router, prefix="/api/payments", tags=["payments"])

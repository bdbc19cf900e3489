from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from modelpass.core.config import settings
from modelpass.routers import (
    access,
    earnings,
    pricing,
    resources,
    subscriptions,
    usage,
    webhooks,
)

OPENAPI_TAGS = [
    {"name": "Access", "description": "Entitlement and quota checks for callers."},
    {"name": "Resources", "description": "Publish resources, offer plans, purchase and invoke."},
    {"name": "Pricing", "description": "Price quotes for access durations."},
    {"name": "Subscriptions", "description": "List and cancel a caller's subscriptions."},
    {"name": "Usage", "description": "Metered usage summaries and recent events."},
    {"name": "Earnings", "description": "Resource owner earnings ledger."},
    {"name": "Webhooks", "description": "Inbound payment provider deliveries."},
]

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.version,
    description=(
        "Billing core for a pay-per-access model marketplace. "
        "Prices access, gates invocations on subscription and quota, meters usage, "
        "credits resource owners and reconciles payment webhooks."
    ),
    openapi_tags=OPENAPI_TAGS,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Retry-After", "X-RateLimit-Limit", "X-RateLimit-Remaining"],
)

app.include_router(access.router, prefix="/v1/access", tags=["Access"])
app.include_router(resources.router, prefix="/v1/resources", tags=["Resources"])
app.include_router(pricing.router, prefix="/v1/pricing", tags=["Pricing"])
app.include_router(subscriptions.router, prefix="/v1/subscriptions", tags=["Subscriptions"])
app.include_router(usage.router, prefix="/v1/usage", tags=["Usage"])
app.include_router(earnings.router, prefix="/v1/earnings", tags=["Earnings"])
app.include_router(webhooks.router, prefix="/v1/webhooks", tags=["Webhooks"])


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "app": settings.APP_NAME,
        "version": settings.version,
        "domain": settings.APP_DOMAIN,
        "status": "running",
    }


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}

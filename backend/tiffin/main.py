"""FastAPI application entry point."""

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from tiffin.core.config import settings
from tiffin.core.exceptions import register_exception_handlers
from tiffin.core.logging import setup_logging
from tiffin.core.metrics import get_content_type, get_metrics, set_app_info
from tiffin.core.middleware import (
    CorrelationIdMiddleware,
    MetricsMiddleware,
    RequestLoggingMiddleware,
)
from tiffin.modules.billing.router import plans_router, router as subscription_router
from tiffin.modules.delivery.router import pause_router, schedule_router
from tiffin.modules.order.router import router as order_router

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="""
## Tiffin Meal Subscription API

Meal plan subscriptions with pro-rata upgrades, one-off and event orders,
delivery pauses and the daily dispatch manifest.

### Authentication

All endpoints except `/health` and `/metrics` require a JWT Bearer token.

```
Authorization: Bearer <access_token>
```
    """,
    openapi_url=f"{settings.API_PREFIX}/openapi.json",
    openapi_tags=[
        {"name": "health", "description": "Health check endpoints"},
        {"name": "plans", "description": "Plan catalogue"},
        {
            "name": "subscriptions",
            "description": "Subscribe, upgrade, renew and cancel meal subscriptions",
        },
        {"name": "orders", "description": "One-off and event orders, cancellation and refunds"},
        {"name": "delivery-pauses", "description": "Skip deliveries for a date range"},
        {"name": "admin", "description": "Daily dispatch manifest for staff"},
    ],
)

setup_logging(
    level=settings.LOG_LEVEL if not settings.DEBUG else "DEBUG",
    json_format=settings.LOG_JSON,
    include_stack_trace=True,
)

set_app_info(
    version=settings.VERSION,
    environment="development" if settings.DEBUG else "production",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(MetricsMiddleware)

register_exception_handlers(app)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/metrics", include_in_schema=False)
async def prometheus_metrics() -> Response:
    """Metrics in Prometheus text format."""
    return Response(content=get_metrics(), media_type=get_content_type())


app.include_router(plans_router, prefix=settings.API_PREFIX)
app.include_router(subscription_router, prefix=settings.API_PREFIX)
app.include_router(order_router, prefix=settings.API_PREFIX)
app.include_router(pause_router, prefix=settings.API_PREFIX)
app.include_router(schedule_router, prefix=settings.API_PREFIX)

from contextlib import asynccontextmanager

from fastapi import FastAPI
from shared.config.database import engine, Base
from shared.config.settings import SERVICE_NAME
from shared.observability import setup_observability
from shared.responses import register_exception_handlers
from shared.security import limiter

# IMPORTANT: import models so they register with Base
from services.product_service import models as product_models
from services.customer_service import models as customer_models
from services.order_service import models as order_models
from services.payment_service import models as payment_models

from services.product_service.router import router as product_router
from services.customer_service.router import router as address_router
from services.order_service.router import router as order_router, admin_router as admin_order_router
from services.payment_service.router import router as payment_router
from services.orchestrator.dependencies import build_lifecycle_controller


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Prefer deploy-time migrations; this keeps local/dev runs self-contained
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


app = FastAPI(title="Storefront", version="1.0.0", lifespan=lifespan)

# --- OBSERVABILITY BOOTSTRAP ---
setup_observability(app, SERVICE_NAME)

# --- SECURITY SETUP ---
app.state.limiter = limiter
register_exception_handlers(app)

# --- ORDER LIFECYCLE ---
app.state.lifecycle = build_lifecycle_controller()

app.include_router(product_router)
app.include_router(address_router)
app.include_router(order_router)
app.include_router(admin_order_router)
app.include_router(payment_router)


@app.get("/health", include_in_schema=False)
async def health_check():
    return {"service": SERVICE_NAME, "status": "running"}

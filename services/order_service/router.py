from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from services.orchestrator.dependencies import get_lifecycle_controller
from services.orchestrator.lifecycle import OrderLifecycleController
from shared.config.database import get_db
from shared.responses import success_response
from shared.security import Principal, get_current_principal, limiter, require_admin
from shared.security.rate_limiter import ORDER_RATE_LIMIT
from .models import OrderStatus
from .schemas import (
    OrderCancel,
    OrderCancelResponse,
    OrderCreate,
    OrderListQuery,
    OrderStatusUpdate,
)
from .service import OrderService

router = APIRouter(prefix="/orders", tags=["Orders"])
admin_router = APIRouter(prefix="/admin/orders", tags=["Admin Orders"])


@router.get("")
async def list_orders(
    query: OrderListQuery = Depends(),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return success_response(await OrderService.list_orders(db, principal, query))


@router.post("", status_code=status.HTTP_201_CREATED)
@limiter.limit(ORDER_RATE_LIMIT)
async def create_order(
    request: Request,
    payload: OrderCreate,
    principal: Principal = Depends(get_current_principal),
    controller: OrderLifecycleController = Depends(get_lifecycle_controller),
):
    order = await controller.create_order(principal, payload.address_id, payload.items, payload.notes)
    return success_response(
        {"order": order, "payment_required": True},
        "Order created successfully",
        status.HTTP_201_CREATED,
    )


@router.get("/{order_id}")
async def get_order(
    order_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return success_response(await OrderService.get_order(db, order_id, principal))


@router.post("/{order_id}/cancel")
async def cancel_order(
    order_id: int,
    payload: Optional[OrderCancel] = None,
    principal: Principal = Depends(get_current_principal),
    controller: OrderLifecycleController = Depends(get_lifecycle_controller),
):
    reason = payload.reason if payload else None
    result = await controller.cancel_order(order_id, principal, reason)
    return success_response(
        OrderCancelResponse(order_id=result.order_id, status=result.status, refund_status=result.refund_status),
        "Order cancelled successfully",
    )


# --- ADMIN ---

@admin_router.get("")
async def admin_list_orders(
    status_filter: Optional[OrderStatus] = Query(default=None, alias="status"),
    payment_status: Optional[str] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await OrderService.list_all_orders(
        db,
        status=status_filter.value if status_filter else None,
        payment_status=payment_status,
        page=page,
        limit=limit,
    )
    return success_response(result)


@admin_router.get("/{order_id}")
async def admin_get_order(
    order_id: int,
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return success_response(await OrderService.get_order(db, order_id, admin))


@admin_router.patch("/{order_id}")
async def admin_update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    admin: Principal = Depends(require_admin),
    controller: OrderLifecycleController = Depends(get_lifecycle_controller),
):
    order = await controller.update_order_status(
        order_id,
        admin,
        payload.status,
        tracking_number=payload.tracking_number,
        tracking_url=str(payload.tracking_url) if payload.tracking_url else None,
        notes=payload.notes,
    )
    return success_response(order, f"Order status updated to {payload.status.value}")

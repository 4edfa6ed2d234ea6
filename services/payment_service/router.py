from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from services.orchestrator.dependencies import get_lifecycle_controller
from services.orchestrator.lifecycle import OrderLifecycleController
from services.order_service.repository import OrderRepository
from shared.config.database import get_db
from shared.exceptions import ForbiddenError, NotFoundError
from shared.responses import success_response
from shared.security import Principal, get_current_principal, limiter
from shared.security.rate_limiter import PAYMENT_RATE_LIMIT
from .repository import PaymentRepository
from .schemas import PaymentIntentCreate, PaymentResponse, PaymentVerify, PaymentVerifyResponse
from .service import GatewayCallback

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/create-order")
@limiter.limit(PAYMENT_RATE_LIMIT)
async def create_payment_order(
    request: Request,
    payload: PaymentIntentCreate,
    principal: Principal = Depends(get_current_principal),
    controller: OrderLifecycleController = Depends(get_lifecycle_controller),
):
    intent = await controller.create_payment_intent(payload.order_id, principal)
    return success_response(intent)


@router.post("/verify")
@limiter.limit(PAYMENT_RATE_LIMIT)
async def verify_payment(
    request: Request,
    payload: PaymentVerify,
    principal: Principal = Depends(get_current_principal),
    controller: OrderLifecycleController = Depends(get_lifecycle_controller),
):
    result = await controller.reconcile_payment(
        GatewayCallback(
            gateway_order_id=payload.gateway_order_id,
            gateway_payment_id=payload.gateway_payment_id,
            signature=payload.signature,
        ),
        principal=principal,
    )
    message = "Payment already verified" if result.already_processed else "Payment verified successfully"
    return success_response(
        PaymentVerifyResponse(
            payment_id=result.payment_id,
            order_id=result.order_id,
            order_number=result.order_number,
            status=result.status,
            order_status=result.order_status,
            amount=result.amount,
            already_processed=result.already_processed,
        ),
        message,
    )


@router.post("/webhook")
async def gateway_webhook(
    request: Request,
    x_razorpay_signature: str | None = Header(default=None),
    controller: OrderLifecycleController = Depends(get_lifecycle_controller),
):
    # Signature covers the exact raw bytes
    body = await request.body()
    outcome = await controller.handle_gateway_event(body, x_razorpay_signature)
    return success_response({"outcome": outcome}, "Webhook processed")


@router.get("/orders/{order_id}")
async def get_payment_for_order(
    order_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    order = await OrderRepository.get_order(db, order_id)
    if not order:
        raise NotFoundError("Order not found")
    if order.user_id != principal.id and not principal.is_admin:
        raise ForbiddenError("You do not have access to this order")
    payment = await PaymentRepository.get_by_order_id(db, order_id)
    if not payment:
        raise NotFoundError("Payment not found")
    return success_response(PaymentResponse.model_validate(payment))

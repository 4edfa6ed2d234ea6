from fastapi import Request

from shared.config.database import get_session_factory
from shared.notifications import build_notifier
from services.payment_service.gateway import RazorpayGateway
from .lifecycle import OrderLifecycleController


def build_lifecycle_controller() -> OrderLifecycleController:
    """Production wiring: shared session factory, Razorpay, configured notifier."""
    return OrderLifecycleController(
        session_factory=get_session_factory(),
        gateway=RazorpayGateway(),
        notifier=build_notifier(),
    )


def get_lifecycle_controller(request: Request) -> OrderLifecycleController:
    return request.app.state.lifecycle

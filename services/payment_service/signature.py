import hashlib
import hmac


def _hex_digest(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def sign_checkout(order_ref: str, payment_ref: str, secret: str) -> str:
    """Checkout callback signature: HMAC-SHA256 of ``order_ref|payment_ref``."""
    return _hex_digest(secret, f"{order_ref}|{payment_ref}".encode("utf-8"))


def verify_checkout_signature(order_ref: str, payment_ref: str, signature: str, secret: str) -> bool:
    if not (secret and signature):
        return False
    expected = sign_checkout(order_ref, payment_ref, secret)
    return hmac.compare_digest(expected, str(signature))


def sign_webhook(body: bytes, secret: str) -> str:
    return _hex_digest(secret, body)


def verify_webhook_signature(body: bytes, signature: str, secret: str) -> bool:
    """Webhook signature: HMAC-SHA256 of the raw request body."""
    if not (secret and signature):
        return False
    return hmac.compare_digest(sign_webhook(body, secret), str(signature))

import os
from dotenv import load_dotenv

load_dotenv()

# --- DATABASE ---
DB_USER = os.getenv("POSTGRES_USER", "postgres")
DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
DB_HOST = os.getenv("POSTGRES_HOST", "localhost") # In Docker, this will be 'postgres'
DB_PORT = os.getenv("POSTGRES_PORT", "5433")
DB_NAME = os.getenv("POSTGRES_DB", "ecommerce")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+asyncpg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)
DB_ECHO = os.getenv("DB_ECHO", "false").lower() == "true"

# --- AUTH ---
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

# --- RATE LIMITS ---
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
PAYMENT_RATE_LIMIT = os.getenv("PAYMENT_RATE_LIMIT", "10/minute")
ORDER_RATE_LIMIT = os.getenv("ORDER_RATE_LIMIT", "30/minute")

# --- PAYMENT GATEWAY (Razorpay) ---
RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID", "")
RAZORPAY_KEY_SECRET = os.getenv("RAZORPAY_KEY_SECRET", "")
RAZORPAY_WEBHOOK_SECRET = os.getenv("RAZORPAY_WEBHOOK_SECRET", "")
RAZORPAY_API_URL = os.getenv("RAZORPAY_API_URL", "https://api.razorpay.com/v1").rstrip("/")
GATEWAY_TIMEOUT_SECONDS = float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "5.0"))
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "INR")

# --- NOTIFICATIONS ---
NOTIFICATION_URL = os.getenv("NOTIFICATION_URL", "").rstrip("/")
INTERNAL_API_KEY = os.getenv("INTERNAL_API_KEY", "internal-cluster-key-change-me")

# --- OBSERVABILITY ---
SERVICE_NAME = os.getenv("SERVICE_NAME", "storefront")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT", "http://localhost:4317")
TRACING_ENABLED = os.getenv("TRACING_ENABLED", "true").lower() == "true"

# --- ORDERS ---
ORDER_NUMBER_PREFIX = "ORD"
ORDER_NUMBER_MAX_ATTEMPTS = int(os.getenv("ORDER_NUMBER_MAX_ATTEMPTS", "3"))
DEFAULT_CANCEL_REASON = "Customer requested cancellation"
REFUND_NOTE = "Refund will be processed within 5-7 business days"

import os
from decimal import Decimal

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=False)

# Application environment
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
DEBUG = ENVIRONMENT == "development"
TESTING = os.getenv("TESTING", "false").lower() == "true"

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Application settings
APP_NAME = "LivestockWay Payments API"
APP_VERSION = "1.0.0"

# Database settings
DATABASE_URL = os.getenv("DATABASE_URL")
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "10"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "20"))

# Stripe settings
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_PUBLISHABLE_KEY = os.getenv("STRIPE_PUBLISHABLE_KEY", "")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
STRIPE_WEBHOOK_TOLERANCE_SECONDS = int(os.getenv("STRIPE_WEBHOOK_TOLERANCE_SECONDS", "300"))

# Fee settings (platform commission on top of the hauler amount, Stripe card pricing)
STRIPE_PLATFORM_FEE_PERCENT = Decimal(os.getenv("STRIPE_PLATFORM_FEE_PERCENT", "3"))
STRIPE_PROCESSING_RATE = Decimal(os.getenv("STRIPE_PROCESSING_RATE", "0.029"))
STRIPE_PROCESSING_FIXED_CENTS = int(os.getenv("STRIPE_PROCESSING_FIXED_CENTS", "30"))

PAYMENTS_DEFAULT_CURRENCY = os.getenv("PAYMENTS_DEFAULT_CURRENCY", "usd")
SUBSCRIPTION_CURRENCY = os.getenv("SUBSCRIPTION_CURRENCY", "USD")

# Redirect targets for checkout and Connect onboarding
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Bearer token verification (tokens are issued by the auth service)
JWT_SECRET = os.getenv("JWT_SECRET", "")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Redis / task queue settings
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
TASK_QUEUE_BACKEND = os.getenv("TASK_QUEUE_BACKEND", "redis")  # 'redis' or 'memory'
WORKER_QUEUE = os.getenv("WORKER_QUEUE", "tasks")

import sys
import logging
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from slowapi.errors import RateLimitExceeded
from datachat.api.routes import router
from datachat.api.metrics import router as metrics_router
from datachat.core.config import get_settings
from datachat.core.logging import configure_logging
from datachat.core.middleware import CorrelationIDMiddleware, TimeoutMiddleware
from datachat.core.rate_limit import limiter, rate_limit_handler
from datachat.core.security import SecurityHeadersMiddleware

# Load environment variables
load_dotenv()

# Load and validate configuration
try:
    settings = get_settings()
except Exception as e:
    # Basic logger for startup errors
    logging.basicConfig(level=logging.ERROR)
    logging.getLogger(__name__).error(f"Failed to load configuration: {e}")
    sys.exit(1)

configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="DataChat API",
    description="Ask questions about spreadsheet data and get charts back",
    version="1.0.0"
)

# Store limiter and settings in app state for use in routes
app.state.limiter = limiter
app.state.settings = settings

app.add_exception_handler(RateLimitExceeded, rate_limit_handler)

# Add middleware in order (last added is first executed)
# 1. Correlation ID middleware
app.add_middleware(CorrelationIDMiddleware)

# 2. Compression middleware
app.add_middleware(GZipMiddleware, minimum_size=1000)

# 3. CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization", "X-Correlation-ID"],
    expose_headers=["X-Correlation-ID"]
)

# 4. Request timeout middleware
app.add_middleware(TimeoutMiddleware, timeout_seconds=settings.request_timeout_seconds)

# 5. Security headers middleware (CSP, X-Frame-Options, etc.)
app.add_middleware(SecurityHeadersMiddleware)

logger.info(f"CORS allowed origins: {settings.allowed_origins_list}")

app.include_router(router, prefix="/api")
app.include_router(metrics_router, prefix="/api")


@app.get("/")
async def root():
    return {"message": "DataChat API is running"}

logger.info("Application started successfully")

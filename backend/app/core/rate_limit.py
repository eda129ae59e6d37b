"""
Rate limiting configuration.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import settings

# Create limiter instance
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)

# Rate limit configurations
# Format: "count/period" where period can be second(s), minute(s), hour(s), day(s)
AUTH_LIMIT = "5/minute"  # Login/register endpoints
UPLOAD_LIMIT = "60/hour"  # Version, art and attachment uploads
GUEST_WRITE_LIMIT = "30/minute"  # Feedback and decisions through share links

"""Per-domain rate limit bookkeeping."""

from typing import Optional

from pydantic import BaseModel, Field


class RateLimitState(BaseModel):
    """Rate limit state for one domain. Timestamps are clock seconds."""

    last_request_time: float = 0.0
    request_count: int = Field(default=0, ge=0)
    window_start: float = 0.0
    is_rate_limited: bool = False
    backoff_until: Optional[float] = None

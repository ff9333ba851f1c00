"""Per-client retry policy for helpdesk connectors."""

from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class RetryPolicy(BaseModel):
    """Declarative retry configuration for a ConnectorClient.

    Helpdesk APIs disagree on how they throttle: most answer 429 with a
    Retry-After header, some need a fixed delay before every request to stay
    under a published quota. Each client carries its own policy.
    """

    max_retries: Optional[int] = Field(
        5, description="Retries after the first attempt; None retries until the server relents"
    )
    default_retry_after: float = Field(
        30.0, description="Seconds to wait when a rate-limit response has no Retry-After"
    )
    min_retry_after: float = Field(
        0.0, description="Lower bound on any rate-limit wait, in seconds"
    )
    rate_limit_statuses: List[int] = Field(
        default_factory=lambda: [429], description="Status codes treated as rate limiting"
    )
    pre_request_delay: float = Field(
        0.0, description="Seconds to sleep before every request"
    )

    @model_validator(mode="after")
    def validate_policy(self):
        """Reject negative waits and retry counts."""
        if self.max_retries is not None and self.max_retries < 0:
            raise ValueError("max_retries must be >= 0 or None")
        for name in ("default_retry_after", "min_retry_after", "pre_request_delay"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
        return self

    @classmethod
    def reactive(cls, default_retry_after: float = 30.0, max_retries: int = 5) -> "RetryPolicy":
        """Retry on 429, honouring Retry-After with a per-source fallback."""
        return cls(default_retry_after=default_retry_after, max_retries=max_retries)

    @classmethod
    def fixed_delay(
        cls,
        pre_request_delay: float = 2.5,
        default_retry_after: float = 90.0,
        min_retry_after: float = 60.0,
        max_retries: int = 10,
        rate_limit_statuses: Optional[List[int]] = None,
    ) -> "RetryPolicy":
        """Pace every request up front and back off hard when throttled anyway."""
        return cls(
            pre_request_delay=pre_request_delay,
            default_retry_after=default_retry_after,
            min_retry_after=min_retry_after,
            max_retries=max_retries,
            rate_limit_statuses=rate_limit_statuses or [429, 503],
        )

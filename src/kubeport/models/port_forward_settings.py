"""
Settings model for tunnel supervision.

Defines the retry budget, backoff window, connection timeout and health check
cadence applied to every port-forward instance.
"""

from pydantic import Field, model_validator

from . import CustomBaseSettings


class PortForwardSettings(CustomBaseSettings):
    """
    Timing and retry policy for port-forward instances.

    All durations are in milliseconds.
    """

    MAX_RETRIES: int = Field(default=5, ge=0)
    RETRY_DELAY_MS: int = Field(default=1000, gt=0)
    MAX_RETRY_DELAY_MS: int = Field(default=30000, gt=0)
    CONNECTION_TIMEOUT_MS: int = Field(default=30000, gt=0)
    HEALTH_CHECK_INTERVAL_MS: int = Field(default=5000, gt=0)
    HEALTH_CHECK_TIMEOUT_MS: int = Field(default=2000, gt=0)
    HEALTH_CHECK_HOST: str = Field(default="localhost")

    @model_validator(mode="after")
    def _check_retry_window(self) -> "PortForwardSettings":
        if self.MAX_RETRY_DELAY_MS < self.RETRY_DELAY_MS:
            raise ValueError(
                f"MAX_RETRY_DELAY_MS ({self.MAX_RETRY_DELAY_MS}) must not be lower than "
                f"RETRY_DELAY_MS ({self.RETRY_DELAY_MS})."
            )
        return self

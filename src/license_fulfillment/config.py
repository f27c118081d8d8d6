"""Configuration for license fulfillment.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

Provider API keys are NOT settings. They are resolved per call through the
credential provider (see `FULFILLMENT_SECRET_PREFIX`).
"""

from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FulfillmentSettings(BaseSettings):
    """Settings for the purchase fulfillment workflow.

    Environment variables:
    - FULFILLMENT_FROM_EMAIL          (required)
    - LOG_LEVEL                       (optional)
    - KEYGEN_BASE_URL / KEYGEN_POLICY_ID
    - PADDLE_BASE_URL
    - FULFILLMENT_SECRET_PREFIX       (optional)
    - FULFILLMENT_SMTP_*              (optional)

    Notes:
        Tests can bypass `.env` with `FulfillmentSettings(_env_file=None, ...)`.
    """

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    keygen_base_url: str = Field(
        default="https://api.keygen.sh/v1/accounts/07fab0ef-505c-447d-ae6a-932b5339300d",
        validation_alias="KEYGEN_BASE_URL",
        description="Keygen account API base URL",
    )
    keygen_policy_id: str = Field(
        default="8c2294b0-dbbe-4028-b561-6aa246d60951",
        validation_alias="KEYGEN_POLICY_ID",
        description="Keygen policy that newly created licenses are attached to",
    )
    keygen_secret_ref: str = Field(
        default="KeygenSecret",
        validation_alias="KEYGEN_SECRET_REF",
        description="Credential reference for the Keygen API key",
    )

    paddle_base_url: str = Field(
        default="https://sandbox-api.paddle.com",
        validation_alias="PADDLE_BASE_URL",
        description="Paddle API base URL (sandbox by default)",
    )
    paddle_secret_ref: str = Field(
        default="PaddleSecret",
        validation_alias="PADDLE_SECRET_REF",
        description="Credential reference for the Paddle API key",
    )

    from_email: str = Field(
        default="",
        validation_alias="FULFILLMENT_FROM_EMAIL",
        description="Sender address for license emails",
    )
    email_subject: str = Field(
        default="Your license key",
        validation_alias="FULFILLMENT_EMAIL_SUBJECT",
    )

    http_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        validation_alias="FULFILLMENT_HTTP_TIMEOUT_SECONDS",
        description="Upper bound for a single external call attempt",
    )
    max_branch_workers: int = Field(
        default=8,
        ge=1,
        validation_alias="FULFILLMENT_MAX_BRANCH_WORKERS",
        description="Thread cap for parallel branches",
    )
    secret_prefix: str = Field(
        default="FULFILLMENT_SECRET_",
        validation_alias="FULFILLMENT_SECRET_PREFIX",
        description="Environment prefix for credential references",
    )

    smtp_host: str = Field(default="localhost", validation_alias="FULFILLMENT_SMTP_HOST")
    smtp_port: int = Field(default=587, gt=0, validation_alias="FULFILLMENT_SMTP_PORT")
    smtp_username: str = Field(default="", validation_alias="FULFILLMENT_SMTP_USERNAME")
    smtp_password: str = Field(default="", validation_alias="FULFILLMENT_SMTP_PASSWORD")
    smtp_use_tls: bool = Field(default=True, validation_alias="FULFILLMENT_SMTP_USE_TLS")

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    @model_validator(mode="after")
    def _require_sender(self) -> FulfillmentSettings:
        if not self.from_email.strip():
            raise ValueError("FULFILLMENT_FROM_EMAIL is required")
        return self

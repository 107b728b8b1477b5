from __future__ import annotations

import logging

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables (FORMFLOW_*) or .env."""

    model_config = SettingsConfigDict(env_prefix="FORMFLOW_", env_file=".env", extra="ignore")

    # VALIDATION
    BOOKING_DATE_FIELD: str = "booking_date"
    BOOKING_DATE_MESSAGE: str = "Date cannot be in the past"

    # WORKFLOW
    RESET_PROGRESS_ON_REJECTION: bool = True
    REQUIRE_REJECTION_COMMENTS: bool = True
    INSURANCE_EDIT_DURING_MANAGER_REVIEW: bool = True  # legacy PENDING_APPROVAL maps to manager review

    # DISPLAY
    LEGACY_PENDING_LABEL: bool = True  # show PENDING_APPROVAL for manager-only flows

    # LOGGING
    LOG_LEVEL: str = "INFO"


settings = Settings()


def configure_logging(cfg: Settings | None = None) -> None:
    """Attach a basic stream handler to the package logger at LOG_LEVEL."""
    cfg = cfg or settings
    logger = logging.getLogger("formflow")
    logger.setLevel(cfg.LOG_LEVEL.upper())
    if not any(isinstance(h, logging.StreamHandler) and not isinstance(h, logging.NullHandler)
               for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)

"""Runtime settings and logging configuration."""

import logging.config
from typing import Any, Dict

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

TEMPLATE_API = "/autopilot/api/v5/external/template"
REGISTER_CANARY_PATH = "/autopilot/api/v5/registerCanary"
SCORE_URL_PATH = "/autopilot/v5/canaries/"

USER_HEADER = "x-spinnaker-user"
REPORT_TOKEN_HEADER = "x-opsmx-report-token"

PLUGIN_NAME = "argoproj-labs/rollouts-opsmx-metric-plugin"


class Settings(BaseSettings):
    """Settings with environment variable support (prefix ``CANARY_GATE_``)."""

    model_config = SettingsConfigDict(env_prefix="CANARY_GATE_")

    poll_interval_seconds: float = Field(
        default=3.0,
        description="Delay before the next status poll while the remote job is RUNNING.",
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        description="Overall timeout applied to every outbound request.",
    )
    default_profile: str = Field(
        default="opsmx-profile",
        description="Secret holding the run profile when the analysis spec names none.",
    )
    check_base_url: bool = Field(
        default=True,
        description="Probe the analysis service base URL before submitting.",
    )
    log_level: str = Field(default="INFO")


settings = Settings()


def get_logging_config(level: str = None) -> Dict[str, Any]:
    level = (level or settings.log_level).upper()
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {"format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s"},
        },
        "handlers": {
            "console": {
                "level": level,
                "formatter": "standard",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stderr",
            }
        },
        "loggers": {
            "": {"handlers": ["console"], "level": level, "propagate": False},
            "httpx": {"level": "WARNING"},
        },
    }


def setup_logging(level: str = None) -> None:
    logging.config.dictConfig(get_logging_config(level))

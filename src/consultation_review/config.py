"""Configuration models for the consultation review core.

Settings live in ``configs/config.json`` with one section per concern. Missing
sections or a missing file fall back to the model defaults.
"""

import json
import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field

from .schemas.common import ServiceCategory

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "CONSULTATION_REVIEW_CONFIG"
DEFAULT_CONFIG_FILE = "configs/config.json"


class PricingSettings(BaseModel):
    currency: str = "NGN"
    round_to: int = 2


class JustificationSettings(BaseModel):
    min_length: int = Field(default=30, ge=1)
    repeat_window_days: int = Field(default=30, ge=0)
    high_value_thresholds: dict[ServiceCategory, float] = {
        ServiceCategory.LAB: 30000,
        ServiceCategory.PHARMACY: 25000,
        ServiceCategory.CONSULTATION: 50000,
        ServiceCategory.PROCEDURE: 100000,
        ServiceCategory.ADMISSION: 150000,
        ServiceCategory.OTHER: 50000,
    }

    def threshold_for(self, category: ServiceCategory) -> float | None:
        return self.high_value_thresholds.get(category)


class ComplianceSettings(BaseModel):
    # The structural checklist is always computed; this only controls display
    show_checklist_for_non_hmo: bool = True


class ReviewConfig(BaseModel):
    pricing: PricingSettings = PricingSettings()
    justification: JustificationSettings = JustificationSettings()
    compliance: ComplianceSettings = ComplianceSettings()


def load_config(path: str | Path | None = None) -> ReviewConfig:
    """Load review settings from JSON, falling back to defaults."""
    config_path = Path(path or os.getenv(CONFIG_ENV_VAR) or DEFAULT_CONFIG_FILE)
    if not config_path.exists():
        logger.info("No config at %s, using defaults", config_path)
        return ReviewConfig()
    return ReviewConfig.model_validate(json.loads(config_path.read_text()))


def get_review_config() -> ReviewConfig:
    """Review settings resource for the review workflow."""
    return load_config()

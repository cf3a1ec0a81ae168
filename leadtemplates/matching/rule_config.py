"""
Rule catalog configuration.

Category maps, point values and thresholds used by the built-in matching
rules. Defaults live on the pydantic models; an optional YAML file (see
``matching_rules.yml``) can override any subset of them.
"""

from pathlib import Path
from typing import Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from leadtemplates.matching.models import TemplateCategory
from leadtemplates.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_RULES_PATH = Path(__file__).parent / "matching_rules.yml"

C = TemplateCategory


class Tier(BaseModel):
    """Points awarded once a value passes ``threshold``."""

    threshold: float
    points: int = Field(..., ge=0, le=100)


class CategoryPointsConfig(BaseModel):
    """Lead attribute value -> allowed categories, and value -> points."""

    categories: dict[str, list[TemplateCategory]] = Field(default_factory=dict)
    points: dict[str, int] = Field(default_factory=dict)

    @field_validator("points")
    @classmethod
    def validate_points(cls, v):
        for key, points in v.items():
            if not 0 <= points <= 100:
                raise ValueError(f"Points for '{key}' must be between 0 and 100")
        return v


class LeadScoreConfig(BaseModel):
    low_threshold: float = 30
    high_threshold: float = 80
    high_proposal_points: int = 15
    low_nurturing_points: int = 10

    @field_validator("high_threshold")
    @classmethod
    def validate_thresholds(cls, v, info):
        if "low_threshold" in info.data and v <= info.data["low_threshold"]:
            raise ValueError("high_threshold must be greater than low_threshold")
        return v


class PropertyTypeConfig(BaseModel):
    exact_points: int = 15
    generic_points: int = 5
    generic_keywords: list[str] = Field(default_factory=lambda: ["property", "home"])


class BudgetConfig(BaseModel):
    luxury_min: float = 500_000
    luxury_points: int = 10
    affordable_max: float = 200_000
    affordable_points: int = 10
    premium_min: float = 750_000
    premium_points: int = 15
    generic_points: int = 5


class ContentPreferenceConfig(BaseModel):
    keywords: dict[str, list[str]] = Field(
        default_factory=lambda: {
            "property_details": ["property", "home", "house", "condo"],
            "market_updates": ["market", "price", "trend", "analysis"],
            "lifestyle": ["neighborhood", "community", "lifestyle", "amenities"],
            "investment": ["investment", "roi", "return", "appreciation"],
        }
    )
    points_per_keyword: int = 8


class PerformanceConfig(BaseModel):
    # Gate: templates with history must clear one of these
    min_conversion_rate: float = 0.01
    min_open_rate: float = 0.2
    conversion_tiers: list[Tier] = Field(
        default_factory=lambda: [
            Tier(threshold=0.05, points=10),
            Tier(threshold=0.02, points=5),
        ]
    )
    open_tiers: list[Tier] = Field(
        default_factory=lambda: [
            Tier(threshold=0.4, points=8),
            Tier(threshold=0.2, points=4),
        ]
    )
    response_tiers: list[Tier] = Field(
        default_factory=lambda: [
            Tier(threshold=0.15, points=6),
            Tier(threshold=0.08, points=3),
        ]
    )


class RecencyConfig(BaseModel):
    stale_days: int = 90
    stale_categories: list[TemplateCategory] = Field(
        default_factory=lambda: [C.RE_ENGAGEMENT, C.NURTURING]
    )
    cooling_days: int = 30
    # Tier thresholds here are maximum day counts
    tiers: list[Tier] = Field(
        default_factory=lambda: [
            Tier(threshold=7, points=10),
            Tier(threshold=30, points=5),
            Tier(threshold=90, points=2),
        ]
    )


def _timeline_defaults() -> CategoryPointsConfig:
    return CategoryPointsConfig(
        categories={
            "immediate": [C.INITIAL_CONTACT, C.PROPERTY_SHOWING],
            "1-3 months": [C.FOLLOW_UP, C.PROPOSAL],
            "3-6 months": [C.FOLLOW_UP, C.NURTURING],
            "6-12 months": [C.NURTURING, C.RE_ENGAGEMENT],
            "1+ years": [C.NURTURING, C.RE_ENGAGEMENT],
            "browsing": [C.NURTURING, C.THANK_YOU],
        },
        points={
            "immediate": 25,
            "1-3 months": 20,
            "3-6 months": 15,
            "6-12 months": 10,
            "1+ years": 5,
            "browsing": 5,
        },
    )


def _engagement_defaults() -> CategoryPointsConfig:
    return CategoryPointsConfig(
        categories={
            "high": [C.FOLLOW_UP, C.PROPOSAL, C.PROPERTY_SHOWING],
            "medium": [C.FOLLOW_UP, C.NURTURING, C.RE_ENGAGEMENT],
            "low": [C.INITIAL_CONTACT, C.NURTURING, C.RE_ENGAGEMENT],
        },
        points={"high": 20, "medium": 15, "low": 10},
    )


def _stage_defaults() -> CategoryPointsConfig:
    return CategoryPointsConfig(
        categories={
            "new": [C.INITIAL_CONTACT],
            "contacted": [C.FOLLOW_UP, C.INITIAL_CONTACT],
            "qualified": [C.FOLLOW_UP, C.PROPERTY_SHOWING, C.PROPOSAL],
            "showing": [C.PROPERTY_SHOWING, C.PROPOSAL, C.NEGOTIATION],
            "proposal": [C.PROPOSAL, C.NEGOTIATION, C.CLOSING],
            "negotiating": [C.NEGOTIATION, C.CLOSING],
            "closing": [C.CLOSING, C.THANK_YOU],
            "closed": [C.THANK_YOU],
            "lost": [C.RE_ENGAGEMENT],
            "nurture": [C.NURTURING, C.RE_ENGAGEMENT],
        },
        points={
            "qualified": 15,
            "showing": 20,
            "proposal": 25,
            "negotiating": 20,
            "closing": 15,
            "new": 5,
            "contacted": 8,
            "lost": 3,
            "nurture": 5,
        },
    )


class RuleCatalogConfig(BaseModel):
    """Tunable constants of the built-in matching rules."""

    urgency_points: int = 20
    urgency_categories: list[TemplateCategory] = Field(
        default_factory=lambda: [C.INITIAL_CONTACT, C.FOLLOW_UP]
    )
    timeline: CategoryPointsConfig = Field(default_factory=_timeline_defaults)
    engagement: CategoryPointsConfig = Field(default_factory=_engagement_defaults)
    lead_score: LeadScoreConfig = Field(default_factory=LeadScoreConfig)
    property_type: PropertyTypeConfig = Field(default_factory=PropertyTypeConfig)
    budget: BudgetConfig = Field(default_factory=BudgetConfig)
    channel_points: int = 10
    stage: CategoryPointsConfig = Field(default_factory=_stage_defaults)
    content_preference: ContentPreferenceConfig = Field(
        default_factory=ContentPreferenceConfig
    )
    performance: PerformanceConfig = Field(default_factory=PerformanceConfig)
    recency: RecencyConfig = Field(default_factory=RecencyConfig)
    condition_points: int = Field(default=20, ge=0, le=100)
    disabled_rules: list[str] = Field(default_factory=list)


class RuleCatalogParser:
    """Parser for YAML rule catalog files."""

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        self.config_path = Path(config_path) if config_path else DEFAULT_RULES_PATH
        self.config: Optional[RuleCatalogConfig] = None

    def load_and_validate(self) -> RuleCatalogConfig:
        """
        Load and validate the YAML configuration.

        Returns:
            Validated RuleCatalogConfig object.

        Raises:
            FileNotFoundError: If the configuration file doesn't exist.
            yaml.YAMLError: If the YAML is invalid.
            ValidationError: If the configuration doesn't match the schema.
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        logger.info(f"Loading matching rules from: {self.config_path}")

        try:
            with self.config_path.open() as f:
                raw_config = yaml.safe_load(f) or {}

            self.config = RuleCatalogConfig(**raw_config)
            logger.info(
                "Validated matching rule configuration",
                extra={"disabled_rules": self.config.disabled_rules},
            )
            return self.config

        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML file: {e}")
            raise
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e}")
            raise


def load_rule_config(config_path: Optional[Union[str, Path]] = None) -> RuleCatalogConfig:
    """Load the rule catalog from ``config_path``, or the built-in defaults."""
    if config_path is None:
        return RuleCatalogConfig()
    return RuleCatalogParser(config_path).load_and_validate()


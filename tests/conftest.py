"""
Pytest configuration and fixtures for testing.
"""

from datetime import datetime, timedelta, timezone

import pytest

from leadtemplates.matching.models import (
    Channel,
    LeadCharacteristics,
    Template,
    TemplateCategory,
    TemplateStatus,
)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FrozenClock(datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def make_template():
    """Factory for valid templates; keyword arguments override the defaults."""

    def _make(template_id="tpl-1", **overrides):
        fields = {
            "id": template_id,
            "name": f"Template {template_id}",
            "category": TemplateCategory.FOLLOW_UP,
            "channel": Channel.EMAIL,
            "content": "Hi {{leadName}}, checking in about your search.",
            "subject": "Checking in",
            "status": TemplateStatus.ACTIVE,
        }
        fields.update(overrides)
        return Template(**fields)

    return _make


@pytest.fixture
def hot_lead():
    """Engaged, high-urgency lead early in the funnel."""
    return LeadCharacteristics(
        urgency_level="high",
        timeline="1-3 months",
        engagement_level="high",
        lead_score=85,
        preferred_channel="email",
        lead_stage="new",
        days_since_last_contact=3,
    )

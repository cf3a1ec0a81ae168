"""
Statistical engine for template experiments.

Normal-approximation statistics over the counts held by ``MetricTracker``:
conversion rate, standard error, 95% confidence interval, required sample
size and achieved power. The minimum detectable effect is fixed at ten
percentage points. ``conclude`` turns the per-variant numbers into a winner
and a continue/conclude verdict.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from leadtemplates.ab_testing.metric_tracker import MetricKind, MetricTracker
from leadtemplates.ab_testing.variant_generator import ExperimentVariant
from leadtemplates.utils.logging import get_logger

Z_ALPHA = 1.96  # 95% significance, two-tailed
Z_BETA = 0.84  # 80% power
EFFECT_SIZE = 0.10
MIN_POWER_SAMPLE = 100
DEFAULT_REQUIRED_SAMPLE_SIZE = 1000
SIGNIFICANCE_THRESHOLD = 95
MIN_PARTICIPANTS = 100
CONCLUDE_PARTICIPANTS = 1000


def normal_cdf(x: float) -> float:
    """Standard normal CDF, Abramowitz and Stegun 26.2.17 polynomial."""
    t = 1 / (1 + 0.2316419 * abs(x))
    d = 0.3989423 * math.exp(-x * x / 2)
    probability = (
        d
        * t
        * (0.3193815 + t * (-0.3565638 + t * (1.781478 + t * (-1.821256 + t * 1.330274))))
    )
    return 1 - probability if x > 0 else probability


def standard_error(rate: float, sample_size: int) -> float:
    if sample_size <= 0:
        return 0.0
    return math.sqrt(max(rate * (1 - rate), 0.0) / sample_size)


def confidence_interval(rate: float, se: float) -> Tuple[float, float]:
    return (max(0.0, rate - Z_ALPHA * se), min(1.0, rate + Z_ALPHA * se))


def required_sample_size(baseline_rate: float) -> int:
    """Per-variant sample needed to detect ``EFFECT_SIZE`` at 80% power."""
    treated = baseline_rate + EFFECT_SIZE
    pooled = (baseline_rate + treated) / 2
    numerator = (
        Z_ALPHA * math.sqrt(max(2 * pooled * (1 - pooled), 0.0))
        + Z_BETA
        * math.sqrt(
            max(baseline_rate * (1 - baseline_rate), 0.0) + max(treated * (1 - treated), 0.0)
        )
    ) ** 2
    return math.ceil(numerator / EFFECT_SIZE**2)


def statistical_power(sample_size: int, rate: float) -> float:
    """Probability of detecting ``EFFECT_SIZE`` given the current sample."""
    if sample_size < MIN_POWER_SAMPLE:
        return 0.0
    se = standard_error(rate, sample_size)
    if se == 0:
        return 1.0
    power = 1 - normal_cdf(Z_ALPHA - EFFECT_SIZE / se)
    return min(1.0, max(0.0, power))


@dataclass(frozen=True)
class StatisticalAnalysis:
    test_id: str
    variant_id: str
    sample_size: int
    conversions: int
    conversion_rate: float
    standard_error: float
    confidence_interval: Tuple[float, float]
    statistical_significance: float
    relative_improvement: float
    required_sample_size: int
    power: float
    is_control: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "test_id": self.test_id,
            "variant_id": self.variant_id,
            "sample_size": self.sample_size,
            "conversions": self.conversions,
            "conversion_rate": self.conversion_rate,
            "standard_error": self.standard_error,
            "confidence_interval": list(self.confidence_interval),
            "statistical_significance": self.statistical_significance,
            "relative_improvement": self.relative_improvement,
            "required_sample_size": self.required_sample_size,
            "power": self.power,
            "is_control": self.is_control,
        }


class Verdict(str, Enum):
    CONTINUE = "continue"
    CONCLUDE = "conclude"
    INSUFFICIENT_DATA = "insufficient_data"


@dataclass(frozen=True)
class ExperimentConclusion:
    test_id: str
    winner: Optional[str]
    confidence_level: float
    improvement: float
    recommendation: Verdict
    total_participants: int
    variants: Tuple[StatisticalAnalysis, ...]

    @property
    def is_significant(self) -> bool:
        return self.confidence_level >= SIGNIFICANCE_THRESHOLD

    def to_dict(self) -> Dict[str, Any]:
        return {
            "test_id": self.test_id,
            "winner": self.winner,
            "confidence_level": self.confidence_level,
            "improvement": self.improvement,
            "is_significant": self.is_significant,
            "recommendation": self.recommendation.value,
            "total_participants": self.total_participants,
            "variants": [analysis.to_dict() for analysis in self.variants],
        }


def determine_winner(analyses: Sequence[StatisticalAnalysis]) -> Optional[StatisticalAnalysis]:
    """Highest conversion rate among significant variants; ties keep the first."""
    if len(analyses) < 2:
        return None
    winner = None
    for analysis in analyses:
        if analysis.statistical_significance < SIGNIFICANCE_THRESHOLD:
            continue
        if winner is None or analysis.conversion_rate > winner.conversion_rate:
            winner = analysis
    return winner


def recommend(analyses: Sequence[StatisticalAnalysis]) -> Verdict:
    total = sum(a.sample_size for a in analyses)
    if total < MIN_PARTICIPANTS:
        return Verdict.INSUFFICIENT_DATA
    best = max((a.statistical_significance for a in analyses), default=0.0)
    if best >= SIGNIFICANCE_THRESHOLD and total >= CONCLUDE_PARTICIPANTS:
        return Verdict.CONCLUDE
    return Verdict.CONTINUE


VariantRef = Union[ExperimentVariant, str]


class StatisticalAnalyzer:
    """Computes per-variant statistics from a tracker's running counts."""

    def __init__(self, tracker: MetricTracker):
        self.tracker = tracker
        self.logger = get_logger(f"{__name__}.StatisticalAnalyzer")

    def _rate(self, test_id: str, variant_id: str) -> Tuple[int, int, float]:
        counts = self.tracker.counts(test_id, variant_id)
        impressions = counts.get(MetricKind.IMPRESSIONS, 0)
        conversions = counts.get(MetricKind.CONVERSIONS, 0)
        rate = conversions / impressions if impressions > 0 else 0.0
        return impressions, conversions, rate

    def analyze(
        self,
        test_id: str,
        variants: Sequence[VariantRef],
        control_id: Optional[str] = None,
    ) -> List[StatisticalAnalysis]:
        """
        Analyze each variant of a test.

        Args:
            test_id: Experiment id the events were tracked under
            variants: Experiment variants, or bare variant ids
            control_id: Control variant id; defaults to the variant flagged
                ``is_control``

        Returns:
            One analysis per variant, in the order given. Variants without
            impressions get zero rates, a [0, 0] interval, zero power and the
            default required sample size.
        """
        ids = [v if isinstance(v, str) else v.id for v in variants]
        if control_id is None:
            control_id = next(
                (v.id for v in variants if not isinstance(v, str) and v.is_control),
                None,
            )

        control_rate = 0.0
        if control_id is not None:
            _, _, control_rate = self._rate(test_id, control_id)

        results = []
        for variant_id in ids:
            impressions, conversions, rate = self._rate(test_id, variant_id)
            is_control = variant_id == control_id

            if impressions == 0:
                results.append(
                    StatisticalAnalysis(
                        test_id=test_id,
                        variant_id=variant_id,
                        sample_size=0,
                        conversions=conversions,
                        conversion_rate=0.0,
                        standard_error=0.0,
                        confidence_interval=(0.0, 0.0),
                        statistical_significance=0.0,
                        relative_improvement=0.0,
                        required_sample_size=DEFAULT_REQUIRED_SAMPLE_SIZE,
                        power=0.0,
                        is_control=is_control,
                    )
                )
                continue

            se = standard_error(rate, impressions)
            power = statistical_power(impressions, rate)
            improvement = 0.0
            if not is_control and control_rate > 0:
                improvement = (rate - control_rate) / control_rate * 100

            results.append(
                StatisticalAnalysis(
                    test_id=test_id,
                    variant_id=variant_id,
                    sample_size=impressions,
                    conversions=conversions,
                    conversion_rate=rate,
                    standard_error=se,
                    confidence_interval=confidence_interval(rate, se),
                    statistical_significance=power * 100,
                    relative_improvement=improvement,
                    required_sample_size=required_sample_size(rate),
                    power=power,
                    is_control=is_control,
                )
            )

        self.logger.debug(
            f"Analyzed {len(results)} variants of test {test_id}",
            extra={"test_id": test_id},
        )
        return results

    def conclude(
        self,
        test_id: str,
        variants: Sequence[VariantRef],
        control_id: Optional[str] = None,
    ) -> ExperimentConclusion:
        """
        Pick a winner and say whether the test can stop.

        The winner is the variant with the highest conversion rate among those
        at or above 95 significance; there is none with fewer than two
        variants. The test can be concluded once some variant is significant
        and at least 1000 impressions were tracked in total; under 100 there
        is not enough data to judge.
        """
        analyses = self.analyze(test_id, variants, control_id)
        winner = determine_winner(analyses)
        conclusion = ExperimentConclusion(
            test_id=test_id,
            winner=winner.variant_id if winner else None,
            confidence_level=max(
                (a.statistical_significance for a in analyses), default=0.0
            ),
            improvement=winner.relative_improvement if winner else 0.0,
            recommendation=recommend(analyses),
            total_participants=sum(a.sample_size for a in analyses),
            variants=tuple(analyses),
        )
        self.logger.info(
            f"Test {test_id}: winner {conclusion.winner}, "
            f"recommendation {conclusion.recommendation.value}",
            extra={"test_id": test_id, "winner": conclusion.winner},
        )
        return conclusion

"""Rule-based trace sampling.

Rules are evaluated in order and the first matching rule decides the
sampling rate for the trace (first-match-wins, not best-match). When no rule
matches, the default rate applies. The decision is taken once per trace;
spans are never sampled independently.
"""

import random
import re
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Pattern, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

from ..logging.structured_logger import get_logger

logger = get_logger("sampler")


class SamplingRule(BaseModel):
    """A single conditional sampling rule.

    Attributes:
        name: Human-readable rule name
        match: Metadata fields that must all be present with equal values
        rate: Sampling rate for matching traces (0-1)
        trace_name_pattern: Optional regex the trace name must match (search semantics)

    Example:
        SamplingRule(name="always_sample_shark", match={"agent": "shark_auditor"}, rate=1.0)
    """

    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    match: Dict[str, Any] = Field(default_factory=dict)
    rate: float = Field(ge=0.0, le=1.0)
    trace_name_pattern: Optional[str] = None

    _compiled: Optional[Pattern[str]] = PrivateAttr(default=None)

    @field_validator("trace_name_pattern")
    @classmethod
    def _check_pattern(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            try:
                re.compile(value)
            except re.error as e:
                raise ValueError(f"Invalid trace_name_pattern {value!r}: {e}") from e
        return value

    def model_post_init(self, __context: Any) -> None:
        if self.trace_name_pattern is not None:
            self._compiled = re.compile(self.trace_name_pattern)

    def matches(self, trace_name: str, metadata: Optional[Mapping[str, Any]]) -> bool:
        """Check the trace name pattern and every metadata condition."""
        if self._compiled is not None and not self._compiled.search(trace_name):
            return False

        metadata = metadata or {}
        for key, expected in self.match.items():
            if key not in metadata or metadata[key] != expected:
                return False
        return True


RuleLike = Union[SamplingRule, Mapping[str, Any]]


class Sampler:
    """Decides whether a trace is recorded.

    The rate and rule list are plain last-writer-wins configuration; they are
    operator settings, not per-request state.
    """

    def __init__(
        self,
        rate: float = 1.0,
        rules: Optional[Iterable[RuleLike]] = None,
        rng: Callable[[], float] = random.random,
    ):
        """Initialize sampler.

        Args:
            rate: Default sampling rate used when no rule matches
            rules: Ordered sampling rules
            rng: Uniform [0, 1) source, injectable for tests
        """
        if not _is_valid_rate(rate):
            raise ValueError(f"Sampling rate must be between 0 and 1, got {rate!r}")
        self._rate = float(rate)
        self._rules: List[SamplingRule] = [_coerce_rule(r) for r in rules or ()]
        self._rng = rng

    @property
    def sampling_rate(self) -> float:
        return self._rate

    @property
    def sampling_rules(self) -> List[SamplingRule]:
        return list(self._rules)

    def find_rule(self, trace_name: str, metadata: Optional[Mapping[str, Any]] = None) -> Optional[SamplingRule]:
        """Return the first rule matching the trace, if any."""
        for rule in self._rules:
            if rule.matches(trace_name, metadata):
                return rule
        return None

    def should_sample(self, trace_name: str, metadata: Optional[Mapping[str, Any]] = None) -> bool:
        """Decide whether the trace is recorded.

        Exactly one random draw is made per decision.
        """
        rule = self.find_rule(trace_name, metadata)
        rate = rule.rate if rule is not None else self._rate
        return self._rng() < rate

    def set_sampling_rate(self, rate: float) -> bool:
        """Set the default sampling rate.

        Invalid rates are rejected with a warning and the previous rate is kept.

        Returns:
            True if the rate was updated
        """
        if not _is_valid_rate(rate):
            logger.warning(
                f"Invalid sampling rate {rate}, must be between 0 and 1",
                rejected_rate=str(rate),
                current_rate=self._rate,
            )
            return False

        self._rate = float(rate)
        logger.info(f"Sampling rate updated to {self._rate * 100:g}%", sampling_rate=self._rate)
        return True

    def set_sampling_rules(self, rules: Iterable[RuleLike]) -> None:
        """Replace the rule list wholesale."""
        self._rules = [_coerce_rule(r) for r in rules]
        logger.info(
            f"Sampling rules updated: {len(self._rules)} rule(s) configured",
            rule_count=len(self._rules),
        )


def _is_valid_rate(rate: Any) -> bool:
    if isinstance(rate, bool) or not isinstance(rate, (int, float)):
        return False
    return 0.0 <= rate <= 1.0


def _coerce_rule(rule: RuleLike) -> SamplingRule:
    if isinstance(rule, SamplingRule):
        return rule
    return SamplingRule.model_validate(dict(rule))

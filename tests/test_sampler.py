import random

import pytest
from pydantic import ValidationError

from ikpa_backend.modules.observability.tracing.sampler import Sampler, SamplingRule


def _sample_ratio(sampler: Sampler, n: int = 20000) -> float:
    return sum(sampler.should_sample("trace") for _ in range(n)) / n


@pytest.mark.parametrize("rate", [0.1, 0.25, 0.5, 0.9])
def test_default_rate_converges(rate):
    sampler = Sampler(rate=rate, rng=random.Random(42).random)

    assert _sample_ratio(sampler) == pytest.approx(rate, abs=0.02)


def test_rate_zero_samples_none():
    sampler = Sampler(rate=0.0)

    assert not any(sampler.should_sample("trace") for _ in range(1000))


def test_rate_one_samples_all():
    sampler = Sampler(rate=1.0)

    assert all(sampler.should_sample("trace") for _ in range(1000))


def test_first_matching_rule_wins():
    sampler = Sampler(
        rate=0.5,
        rules=[
            {"name": "first", "match": {"agent": "shark_auditor"}, "rate": 0.0},
            {"name": "second", "match": {"agent": "shark_auditor"}, "rate": 1.0},
        ],
        rng=lambda: 0.0,
    )

    assert sampler.find_rule("t", {"agent": "shark_auditor"}).name == "first"
    assert sampler.should_sample("t", {"agent": "shark_auditor"}) is False


def test_rule_overrides_zero_default_rate():
    sampler = Sampler(rate=0.0, rules=[SamplingRule(match={"agent": "shark_auditor"}, rate=1.0)])

    assert sampler.should_sample("audit", {"agent": "shark_auditor"}) is True
    assert sampler.should_sample("audit", {"agent": "budget_coach"}) is False
    assert sampler.should_sample("audit", None) is False


def test_rule_requires_every_match_key():
    rule = SamplingRule(match={"agent": "shark_auditor", "tier": "premium"}, rate=1.0)

    assert rule.matches("t", {"agent": "shark_auditor", "tier": "premium", "extra": 1})
    assert not rule.matches("t", {"agent": "shark_auditor"})
    assert not rule.matches("t", {"agent": "shark_auditor", "tier": "free"})


def test_trace_name_pattern_uses_search():
    rule = SamplingRule(trace_name_pattern="cognitive_chain$", rate=1.0)

    assert rule.matches("shark_auditor_cognitive_chain", {})
    assert not rule.matches("shark_auditor_cognitive_chain_v2", {})


def test_invalid_pattern_is_rejected():
    with pytest.raises(ValidationError):
        SamplingRule(trace_name_pattern="(unclosed", rate=1.0)


def test_rule_rate_is_bounded():
    with pytest.raises(ValidationError):
        SamplingRule(rate=1.5)


def test_single_draw_per_decision():
    draws = []

    def rng():
        draws.append(1)
        return 0.4

    sampler = Sampler(rate=0.5, rules=[{"match": {"a": 1}, "rate": 0.3}], rng=rng)
    sampler.should_sample("t", {"a": 1})
    sampler.should_sample("t", {"a": 2})

    assert len(draws) == 2


@pytest.mark.parametrize("bad_rate", [-0.1, 1.01, float("nan"), "0.5", None, True])
def test_invalid_rate_is_rejected_and_previous_kept(bad_rate, caplog):
    sampler = Sampler(rate=0.3)

    assert sampler.set_sampling_rate(bad_rate) is False
    assert sampler.sampling_rate == 0.3
    assert any(r.levelname == "WARNING" for r in caplog.records)


def test_valid_rate_is_applied():
    sampler = Sampler(rate=0.3)

    assert sampler.set_sampling_rate(0.75) is True
    assert sampler.sampling_rate == 0.75


def test_invalid_initial_rate_raises():
    with pytest.raises(ValueError):
        Sampler(rate=2.0)


def test_set_rules_replaces_wholesale():
    sampler = Sampler(rules=[{"match": {"a": 1}, "rate": 1.0}])
    sampler.set_sampling_rules([{"name": "only", "match": {"b": 2}, "rate": 0.5}])

    rules = sampler.sampling_rules
    assert [r.name for r in rules] == ["only"]

    rules.clear()
    assert len(sampler.sampling_rules) == 1


def test_rules_stay_plain_data():
    rule = SamplingRule(name="shark", match={"agent": "shark_auditor"}, rate=1.0, trace_name_pattern="^shark")

    assert rule.model_dump() == {
        "name": "shark",
        "match": {"agent": "shark_auditor"},
        "rate": 1.0,
        "trace_name_pattern": "^shark",
    }

"""
Unit tests for quota allocation (quota.py).
"""
import pytest

from exam_generator.core.quota import allocate_quotas
from exam_generator.models.protocol_models import Archetype, PercentRange


@pytest.mark.unit
class TestAllocateQuotas:
    """Test largest-remainder allocation."""

    @pytest.mark.parametrize("total", [0, 1, 7, 13, 30, 91])
    def test_counts_sum_to_total(self, total, registry):
        for protocol in (registry.lookup("NEET", "Biology"),
                         registry.get("reet-mains-level2-educational-psychology")):
            for profile in protocol.difficulty_profiles.values():
                for table in (profile.archetypes, profile.structural_forms, profile.density_mix):
                    counts = allocate_quotas(table, total)
                    assert sum(counts.values()) == total
                    assert all(c >= 0 for c in counts.values())
                    assert list(counts) == list(table)

    def test_largest_remainder_gets_leftover(self, neet_protocol):
        counts = allocate_quotas(neet_protocol.difficulty_profiles["balanced"].archetypes, 10)
        assert counts == {
            Archetype.DIRECT_RECALL: 6,
            Archetype.DIRECT_APPLICATION: 1,
            Archetype.INTEGRATIVE: 1,
            Archetype.DISCRIMINATOR: 1,
            Archetype.EXCEPTION_OUTLIER: 1,
        }

    def test_ties_go_to_declaration_order(self):
        assert allocate_quotas({"a": 50, "b": 50}, 1) == {"a": 1, "b": 0}
        assert allocate_quotas({"x": 1, "y": 1, "z": 1}, 2) == {"x": 1, "y": 1, "z": 0}

    def test_percent_ranges_use_midpoints(self):
        ranges = {"low": PercentRange(min=60, max=80), "high": PercentRange(min=20, max=40)}
        assert allocate_quotas(ranges, 10) == {"low": 7, "high": 3}

    def test_weights_not_summing_to_100_are_normalized(self):
        assert allocate_quotas({"a": 1, "b": 3}, 8) == {"a": 2, "b": 6}

    def test_negative_total_rejected(self):
        with pytest.raises(ValueError):
            allocate_quotas({"a": 100}, -1)

    def test_empty_distribution_rejected(self):
        with pytest.raises(ValueError):
            allocate_quotas({}, 5)

    def test_zero_weights_rejected(self):
        with pytest.raises(ValueError):
            allocate_quotas({"a": 0, "b": 0}, 5)

from fractions import Fraction

import pytest

from freshmarkets.domain.chains import (
    DEFAULT_BLOCKS_PER_MINUTE,
    block_range_for_window,
    resolve_profile,
)
from freshmarkets.domain.models import BlockRange, ChainProfile


class TestResolveProfile:

    def test_known_chain_by_name(self):
        assert resolve_profile("Polygon").blocks_per_minute == 28

    def test_chain_id_wins_over_name(self):
        p = resolve_profile("ethereum", chain_id=137)
        assert p.name == "polygon"

    def test_unknown_chain_gets_default_rate(self):
        p = resolve_profile("somechain", chain_id=999_999)
        assert p.blocks_per_minute == DEFAULT_BLOCKS_PER_MINUTE == 12
        assert p.chain_id == 999_999


class TestBlockRangeForWindow:

    @pytest.mark.parametrize("chain,window,expected", [
        ("ethereum", 10, 120),
        ("polygon", 5, 140),
        ("unknown", 3, 36),
    ])
    def test_span_matches_rate(self, chain, window, expected):
        r = block_range_for_window(chain, window, 1_000_000)
        assert r.end == 1_000_000
        assert r.end - r.start == expected

    def test_fractional_rate_rounds_up(self):
        profile = ChainProfile("slow", None, Fraction(5, 2))
        r = block_range_for_window(profile, 3, 100)
        assert r == BlockRange(92, 100)   # ceil(7.5) = 8

    def test_clamped_at_genesis(self):
        r = block_range_for_window("ethereum", 60, 100)
        assert r == BlockRange(0, 100)

    def test_non_positive_window_is_zero_width_at_tip(self):
        assert block_range_for_window("ethereum", -5, 500) == BlockRange(500, 500)
        assert block_range_for_window("ethereum", 0, 500) == BlockRange(500, 500)

    def test_from_never_exceeds_to(self):
        for window in (1, 7, 1_000):
            for tip in (0, 1, 50, 10_000):
                r = block_range_for_window("polygon", window, tip)
                assert 0 <= r.start <= r.end == tip


def test_block_range_rejects_inverted_bounds():
    with pytest.raises(ValueError):
        BlockRange(10, 5)


def test_tail_narrows_to_most_recent_blocks():
    r = BlockRange(0, 20_000)
    assert r.tail(5_000) == BlockRange(15_001, 20_000)
    assert BlockRange(90, 100).tail(5_000) == BlockRange(90, 100)

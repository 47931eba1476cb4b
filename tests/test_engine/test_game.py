"""
Game-Interaction Modifier Tests.
"""

import numpy as np
import pytest

from adaptrisk.engine.game import GameInteractionModifier
from adaptrisk.engine.schemas import CompetitorMove, GameInteractionConfig, OurStrategy


class TestGameInteraction:

    def test_default_table(self):
        modifier = GameInteractionModifier(GameInteractionConfig())
        assert modifier.multipliers(CompetitorMove.UNDERCUT, OurStrategy.AGGRESSIVE) == (0.85, 1.02)
        assert modifier.multipliers(CompetitorMove.MATCH, OurStrategy.CONSERVATIVE) == (1.0, 1.0)

    def test_never_undercut_conservative_is_identity(self):
        modifier = GameInteractionModifier(GameInteractionConfig(p_undercut=0.0))
        returns, costs = np.full(100, 10.0), np.full(100, 4.0)
        out = modifier.apply(returns, costs, OurStrategy.CONSERVATIVE, np.random.default_rng(0))
        assert np.array_equal(out.returns, returns)
        assert np.array_equal(out.costs, costs)
        assert out.undercut_share == 0.0

    def test_always_undercut_aggressive(self):
        modifier = GameInteractionModifier(GameInteractionConfig(p_undercut=1.0))
        out = modifier.apply(np.full(10, 100.0), np.full(10, 50.0), OurStrategy.AGGRESSIVE, np.random.default_rng(0))
        assert np.allclose(out.returns, 85.0)
        assert np.allclose(out.costs, 51.0)
        assert out.undercut_share == 1.0

    def test_undercut_share_tracks_probability(self):
        modifier = GameInteractionModifier(GameInteractionConfig(p_undercut=0.4))
        out = modifier.apply(np.ones(20_000), np.ones(20_000), OurStrategy.CONSERVATIVE, np.random.default_rng(1))
        assert out.undercut_share == pytest.approx(0.4, abs=0.02)

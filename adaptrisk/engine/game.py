"""
Game-Interaction Modifier.

A 2×2 competitive game: each run the competitor plays Undercut with
probability `p_undercut`, otherwise Match. The move and the option's own
strategy select multipliers applied to that run's return and cost.
"""

from dataclasses import dataclass

import numpy as np

from adaptrisk.engine.schemas import CompetitorMove, GameInteractionConfig, OurStrategy


@dataclass(frozen=True)
class GameOutcome:
    returns: np.ndarray
    costs: np.ndarray
    undercut_share: float     # fraction of runs where the competitor undercut


class GameInteractionModifier:
    def __init__(self, config: GameInteractionConfig):
        self.config = config

    def multipliers(self, move: CompetitorMove, strategy: OurStrategy) -> tuple[float, float]:
        table = self.config.multipliers[move]
        return table.ret_mult.get(strategy, 1.0), table.cost_mult.get(strategy, 1.0)

    def apply(
        self,
        returns: np.ndarray,
        costs: np.ndarray,
        strategy: OurStrategy,
        rng: np.random.Generator,
    ) -> GameOutcome:
        undercut = rng.random(len(returns)) < self.config.p_undercut

        ret_match, cost_match = self.multipliers(CompetitorMove.MATCH, strategy)
        ret_under, cost_under = self.multipliers(CompetitorMove.UNDERCUT, strategy)

        return GameOutcome(
            returns=returns * np.where(undercut, ret_under, ret_match),
            costs=costs * np.where(undercut, cost_under, cost_match),
            undercut_share=float(undercut.mean()) if len(undercut) else 0.0,
        )

"""
Scenario Simulation Engine Tests.

Covers:
- Reproducibility and run fingerprint
- Tail metrics (EV, VaR95, CVaR95)
- Economic capital, RAROC and total cost of risk
- Baselines, horizon scaling, competitor moves
- Dependence, copula and Bayesian overrides wired through simulate()
- Request validation
"""

import numpy as np
import pytest
from hypothesis import given, settings as hyp_settings
from hypothesis import strategies as st

from adaptrisk.engine.distributions import NormalDistribution, UniformDistribution
from adaptrisk.engine.schemas import (
    BayesianOverride,
    CopulaConfig,
    DecisionOption,
    DependenceConfig,
    GameInteractionConfig,
    ScenarioVariable,
    TCORParams,
    UtilityMode,
    UtilityParams,
)
from adaptrisk.engine.simulation import (
    ScenarioSimulationEngine,
    economic_capital,
    tail_metrics,
    total_cost_of_risk,
)
from adaptrisk.errors import InsufficientSamples, InvalidConfig


def _var(key: str, mean: float = 100.0, stdev: float = 20.0, **kwargs) -> ScenarioVariable:
    return ScenarioVariable(key=key, distribution=NormalDistribution(mean=mean, stdev=stdev), **kwargs)


OPTIONS = [DecisionOption(id="a", label="Option A"), DecisionOption(id="b", label="Option B")]


class TestTailMetrics:

    def test_known_values(self):
        outcomes = np.arange(100, dtype=float)  # 0..99
        m = tail_metrics(outcomes)
        assert m.ev == pytest.approx(49.5)
        assert m.var95 == 5.0
        assert m.cvar95 == pytest.approx(2.5)

    def test_single_run(self):
        m = tail_metrics(np.array([7.0]))
        assert m.ev == m.var95 == m.cvar95 == 7.0

    @given(st.lists(st.floats(min_value=-1e6, max_value=1e6), min_size=1, max_size=500))
    @hyp_settings(max_examples=100, deadline=None)
    def test_cvar_never_above_var(self, values):
        m = tail_metrics(np.array(values))
        assert m.cvar95 <= m.var95


class TestCapitalAndCostOfRisk:

    def setup_method(self):
        self.engine = ScenarioSimulationEngine()

    def test_economic_capital_floor_and_horizon(self):
        assert economic_capital(-0.2, 12) == 1.0
        assert economic_capital(-50.0, 12) == 50.0
        assert economic_capital(-50.0, 48) == pytest.approx(100.0)

    def test_total_cost_of_risk_components(self):
        option = DecisionOption(id="o", cost=100.0, mitigation_cost=5.0)
        tcor = total_cost_of_risk(
            np.array([-10.0, -30.0, 20.0, 20.0]), option, capital=30.0,
            params=TCORParams(insurance_rate=0.02, contingency_on_cap=0.1),
        )
        assert tcor.expected_loss == pytest.approx(10.0)
        assert tcor.insurance == pytest.approx(2.0)
        assert tcor.contingency == pytest.approx(3.0)
        assert tcor.mitigation == 5.0
        assert tcor.total == pytest.approx(20.0)

    def test_no_losses_no_expected_loss(self):
        tcor = total_cost_of_risk(np.array([1.0, 2.0]), DecisionOption(id="o"), 1.0, TCORParams())
        assert tcor.total == 0.0

    def test_raroc_reported(self):
        option = DecisionOption(id="o", expected_return=100.0, cost=50.0)
        result = self.engine.simulate([option], [], runs=10)[0]
        assert result.economic_capital == pytest.approx(50.0)
        assert result.raroc == pytest.approx(1.0)
        assert result.tcor is None
        assert result.tcor_components is None

    def test_raroc_over_longer_horizon(self):
        option = DecisionOption(id="o", expected_return=100.0, cost=50.0, horizon_months=48)
        result = self.engine.simulate([option], [], runs=10)[0]
        # outcomes 200, capital 200 * sqrt(4)
        assert result.economic_capital == pytest.approx(400.0)
        assert result.raroc == pytest.approx(0.5)

    def test_tcor_reported_when_requested(self):
        option = DecisionOption(id="o", expected_return=100.0, cost=50.0, mitigation_cost=5.0)
        result = self.engine.simulate(
            [option], [], runs=10,
            tcor_params=TCORParams(insurance_rate=0.1, contingency_on_cap=0.2),
        )[0]
        assert result.tcor_components.expected_loss == 0.0
        assert result.tcor_components.insurance == pytest.approx(5.0)
        assert result.tcor_components.contingency == pytest.approx(10.0)
        assert result.tcor == pytest.approx(20.0)

class TestSimulate:

    def setup_method(self):
        self.engine = ScenarioSimulationEngine()

    def test_end_to_end_normal(self):
        """Normal(100, 20), seed 1, 1000 runs: EV near 100, CVaR ≤ VaR."""
        results = self.engine.simulate(
            [DecisionOption(id="only")], [_var("revenue")], seed=1, runs=1000,
        )
        result = results[0]
        assert len(result.outcomes) == 1000
        assert 95 <= result.ev <= 105
        assert result.cvar95 <= result.var95 <= result.ev
        assert result.horizon_months == 12.0

    def test_same_seed_identical(self):
        a = self.engine.simulate(OPTIONS, [_var("x")], seed=9, runs=300)
        b = self.engine.simulate(OPTIONS, [_var("x")], seed=9, runs=300)
        assert [r.outcomes for r in a] == [r.outcomes for r in b]
        assert a[0].run_fingerprint == b[0].run_fingerprint
        assert len(a[0].run_fingerprint) == 12

    def test_different_seed_differs(self):
        a = self.engine.simulate(OPTIONS, [_var("x")], seed=1, runs=100)
        b = self.engine.simulate(OPTIONS, [_var("x")], seed=2, runs=100)
        assert a[0].outcomes != b[0].outcomes
        assert a[0].run_fingerprint != b[0].run_fingerprint

    def test_options_get_independent_streams(self):
        results = self.engine.simulate(OPTIONS, [_var("x")], seed=3, runs=100)
        assert results[0].outcomes != results[1].outcomes

    def test_option_scoped_variable(self):
        results = self.engine.simulate(
            OPTIONS, [_var("x", mean=10, stdev=0, applies_to="a")], seed=1, runs=50,
        )
        assert results[0].ev == pytest.approx(10.0)
        assert results[1].ev == 0.0

    def test_baselines_are_scaled_multiplicatively(self):
        option = DecisionOption(id="o", expected_return=100.0, cost=50.0)
        variables = [
            _var("uplift", mean=0.1, stdev=0.0),
            _var("inflation", mean=0.2, stdev=0.0, channel="cost"),
        ]
        result = self.engine.simulate([option], variables, runs=10)[0]
        assert result.ev == pytest.approx(110.0 - 60.0)

    def test_baseline_floored_at_zero(self):
        option = DecisionOption(id="o", expected_return=100.0)
        result = self.engine.simulate([option], [_var("crash", mean=-2.0, stdev=0.0)], runs=10)[0]
        assert result.ev == 0.0

    def test_horizon_scaling(self):
        option = DecisionOption(id="o", expected_return=120.0, horizon_months=6)
        result = self.engine.simulate([option], [], runs=5)[0]
        assert result.ev == pytest.approx(60.0)
        assert result.horizon_months == 6

    def test_global_horizon(self):
        result = self.engine.simulate(
            [DecisionOption(id="o", expected_return=120.0)], [], runs=5, horizon_months=24,
        )[0]
        assert result.ev == pytest.approx(240.0)

    def test_game_always_undercut_aggressive(self):
        option = DecisionOption(id="o", expected_return=100.0, cost=50.0, strategy="Aggressive")
        result = self.engine.simulate(
            [option], [], runs=20, game_config=GameInteractionConfig(p_undercut=1.0),
        )[0]
        assert result.ev == pytest.approx(85.0 - 51.0)

    def test_utilities_per_mode(self):
        results = self.engine.simulate(
            OPTIONS, [_var("x")], runs=500,
            utility_params=[
                UtilityParams(mode=UtilityMode.CARA, a=1.0, scale=100.0),
                UtilityParams(mode=UtilityMode.QUADRATIC, a=0.1, scale=100.0),
            ],
        )
        result = results[0]
        assert [u.mode for u in result.utilities] == [UtilityMode.CARA, UtilityMode.QUADRATIC]
        assert result.expected_utility == result.utilities[0].expected_utility
        assert result.risk_premium == pytest.approx(result.ev - result.certainty_equivalent)

    def test_single_utility_params_accepted(self):
        result = self.engine.simulate(OPTIONS, [_var("x")], runs=100, utility_params=UtilityParams())[0]
        assert len(result.utilities) == 1

    def test_pairwise_dependence_reported(self):
        variables = [_var("x"), ScenarioVariable(key="y", distribution=UniformDistribution(low=0, high=1))]
        result = self.engine.simulate(
            OPTIONS, variables, runs=2_000,
            dependence_config=DependenceConfig(var_a="x", var_b="y", target_rho=0.6),
        )[0]
        assert result.achieved_spearman == pytest.approx(0.6, abs=0.06)

    def test_copula_snapshot_reported(self):
        variables = [_var("x"), _var("y"), _var("z")]
        matrix = [[1.0, 0.5, 0.0], [0.5, 1.0, 0.3], [0.0, 0.3, 1.0]]
        result = self.engine.simulate(
            OPTIONS, variables, runs=2_000,
            copula_config=CopulaConfig(variables=["x", "y", "z"], matrix=matrix),
        )[0]
        assert result.copula is not None
        assert result.copula.k == 3
        assert result.copula.frobenius_error < 0.15

    def test_bayesian_override_moves_ev(self):
        override = BayesianOverride(
            variable_key="x", prior_mean=200.0, prior_var=1.0, likelihood_mean=200.0, likelihood_var=1.0,
        )
        result = self.engine.simulate(
            [DecisionOption(id="o")], [_var("x")], runs=2_000, bayesian_overrides=[override],
        )[0]
        assert result.ev == pytest.approx(200.0, abs=1.0)


class TestValidation:

    def setup_method(self):
        self.engine = ScenarioSimulationEngine()

    def test_zero_runs(self):
        with pytest.raises(InvalidConfig):
            self.engine.simulate(OPTIONS, [_var("x")], runs=0)

    def test_too_many_runs(self):
        engine = ScenarioSimulationEngine(max_runs=100)
        with pytest.raises(InvalidConfig):
            engine.simulate(OPTIONS, [_var("x")], runs=101)

    def test_dependence_with_too_few_runs(self):
        with pytest.raises(InsufficientSamples):
            self.engine.simulate(
                OPTIONS, [_var("x"), _var("y")], runs=20,
                dependence_config=DependenceConfig(var_a="x", var_b="y", target_rho=0.5),
            )

    def test_dependence_same_variable(self):
        with pytest.raises(InvalidConfig):
            self.engine.simulate(
                OPTIONS, [_var("x")], runs=100,
                dependence_config=DependenceConfig(var_a="x", var_b="x", target_rho=0.5),
            )

    def test_duplicate_variable_keys(self):
        with pytest.raises(InvalidConfig):
            self.engine.simulate(OPTIONS, [_var("x"), _var("x")], runs=10)

    def test_duplicate_option_ids(self):
        with pytest.raises(InvalidConfig):
            self.engine.simulate([DecisionOption(id="a"), DecisionOption(id="a")], [], runs=10)

    def test_unknown_applies_to(self):
        with pytest.raises(InvalidConfig):
            self.engine.simulate(OPTIONS, [_var("x", applies_to="nope")], runs=10)

    def test_override_for_unknown_variable(self):
        override = BayesianOverride(
            variable_key="ghost", prior_mean=0, prior_var=1, likelihood_mean=0, likelihood_var=1,
        )
        with pytest.raises(InvalidConfig):
            self.engine.simulate(OPTIONS, [_var("x")], runs=10, bayesian_overrides=[override])

    def test_copula_unknown_variable(self):
        with pytest.raises(InvalidConfig):
            self.engine.simulate(
                OPTIONS, [_var("x")], runs=100,
                copula_config=CopulaConfig(variables=["x", "y"], matrix=[[1, 0.2], [0.2, 1]]),
            )

"""
AdaptRisk Simulation Engine — pure Monte Carlo computation.

Components:
- distributions: Tagged distribution variants + vectorised samplers
- dependence: Rank-correlation injection (pairwise + k-variable copula)
- bayesian: Normal-Normal prior blending for scenario variables
- game: Competitor-move multipliers (Match / Undercut)
- utility: Utility families, certainty equivalents, risk premium
- simulation: Scenario simulation engine (per-option outcome distributions)
"""

"""
Signal-triggered refresh.

- schemas: Signal updates, refresh results, metric comparisons, learning trace
- debounce: Per-tenant debounce timer coalescing bursts of updates
- controller: Eligibility, signal shifts, batched re-simulation, commit
- learning: Learning trace + antifragility classification
- monitor: APScheduler poll of the signal feed
"""

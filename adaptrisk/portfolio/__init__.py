"""Portfolio risk aggregation across decisions."""

"""Infrastructure services: document store, audit sink, decisions, signal feed, registry."""

"""Outcome-driven guardrail auto-adjustment."""

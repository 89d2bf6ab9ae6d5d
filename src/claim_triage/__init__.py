"""Claim photo triage and per-area damage aggregation."""

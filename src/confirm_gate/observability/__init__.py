"""Observability — Prometheus metrics."""

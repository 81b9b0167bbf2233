"""Outer interfaces exposing the confirmation service."""

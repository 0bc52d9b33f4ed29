"""Umbrales adaptativos (media + k·σ)."""

from .calculator import ThresholdCalculator, ThresholdPair, value_from_z_score

__all__ = ["ThresholdCalculator", "ThresholdPair", "value_from_z_score"]

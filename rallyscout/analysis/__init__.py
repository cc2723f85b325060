"""Replay of rallies, substitutions and correlations."""

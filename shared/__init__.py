"""Shared models, settings and errors for the signal pipeline."""

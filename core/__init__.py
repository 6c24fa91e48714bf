"""Biometric verification core: capture, similarity scoring, orchestration and upload."""

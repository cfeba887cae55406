"""Prompt-to-design-specification service: generation, history and real-time fan-out."""

__version__ = "0.1.0"

"""Splatter: a voice-first daily reflection companion."""

__version__ = "0.1.0"

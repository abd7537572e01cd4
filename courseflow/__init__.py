"""Courseflow - learner progress tracking and course content ordering."""

__version__ = "0.1.0"

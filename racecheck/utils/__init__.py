"""Configuration and logging utilities for racecheck."""

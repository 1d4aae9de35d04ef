"""
Enums for the racecheck engine.

This module contains all enumeration types used throughout the package
for consistent validation of load patterns, policies and timeline events.
"""

from enum import Enum


class LoadPattern(str, Enum):
    """Timing patterns the generator can produce."""
    BURST = "burst"            # Everyone clicks around the same moment
    SUSTAINED = "sustained"    # One client per probe interval
    SPIKE = "spike"            # Back-to-back sub-bursts of varying size
    GRADUAL = "gradual"        # Linear ramp-up in steps


class SelectionPolicy(str, Enum):
    """Client selection policy for the sustained pattern."""
    ROUND_ROBIN = "round_robin"
    RANDOM = "random"


class AdmissionMode(str, Enum):
    """How the dispatcher enforces the concurrency ceiling."""
    SLOTS = "slots"    # Semaphore, a waiting request runs as soon as a slot frees
    WAVES = "waves"    # Fixed groups, each group completes before the next


class EventKind(str, Enum):
    """Timeline event kinds."""
    START = "start"
    END = "end"


class FailureKind(str, Enum):
    """Origin of a failed outcome."""
    BUSINESS = "business"      # Service answered with a structured rejection
    TRANSPORT = "transport"    # The reservation call itself raised

"""Resource destruction engine.

Classes:
    DestructionEngine: Facade for planning, executing and validating a run
    PhaseScheduler: Runs the fixed destruction phases across targets
    ResourceMatcher: Ownership matching
    Validator: Post-run re-scan for stragglers
    Reporter: JSON and console reporting
"""

from __future__ import annotations

__all__ = [
    "DestructionEngine",
    "PhaseScheduler",
    "ResourceMatcher",
    "Validator",
    "Reporter",
]

"""Pure availability engine: candidate generation, conflict filtering, pooling."""

from slotpool.core.candidates import CandidateSource, generate_candidates
from slotpool.core.conflicts import filter_candidates
from slotpool.core.pooling import pool_slots

__all__ = ["CandidateSource", "filter_candidates", "generate_candidates", "pool_slots"]

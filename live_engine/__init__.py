"""
Live Tournament Engine

Responsibilities:
- Match state machine (score and status mutations)
- Change listener coalescing entity-store writes into recomputation passes
- Stats aggregation and leaderboard ranking
- Atomic publication of derived artifacts
- Client sync and notification diffing for live viewers
"""

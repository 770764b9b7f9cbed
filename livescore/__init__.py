"""
Livescore Service - HTTP front for the live tournament engine

Responsibilities:
- Admin match mutations (create, score, status)
- Read endpoints for the published stats summary and leaderboard
- Manual recomputation trigger
- Server-sent event stream for live viewers
- Diagnostics log of recomputation passes
"""

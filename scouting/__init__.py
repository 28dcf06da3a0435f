"""Scouting report generator package."""

__all__ = [
    "config",
    "cache",
    "ratelimit",
    "grid_client",
    "grid_queries",
    "grid_ingest",
    "fallbacks",
    "mappers",
    "matching",
    "team_resolver",
    "series_resolver",
    "normalize",
    "metrics",
    "features",
    "insights",
    "narrative",
    "report",
    "render",
    "generator",
    "api",
    "cli",
]

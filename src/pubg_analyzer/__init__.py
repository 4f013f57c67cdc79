"""
PUBG match telemetry analyzer.

Turns raw match telemetry into per-player stats, match summaries and insights.
"""

__version__ = "0.1.0"

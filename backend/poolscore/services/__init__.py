"""Match statistics, persistence and live table hosting."""

from .stats import compute_player_stats, detailed_stats
from .match_record import build_match_record, process_innings

__all__ = [
    "compute_player_stats",
    "detailed_stats",
    "build_match_record",
    "process_innings",
]

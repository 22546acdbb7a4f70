"""Chunk ranker - query parsing, hybrid scoring and feedback re-ranking for retrieval."""

__version__ = "0.1.0"

from .config import Config, FlywheelConfig, RankingConfig, Settings, load_settings
from .pipeline import RankingPipeline, build_pipeline

__all__ = [
    "Config",
    "FlywheelConfig",
    "RankingConfig",
    "RankingPipeline",
    "Settings",
    "build_pipeline",
    "load_settings",
    "__version__",
]

"""REST API blueprints (document pipeline and metrics)."""

from __future__ import annotations

from .metrics_bp import metrics_bp
from .pipeline_bp import pipeline_bp

BLUEPRINTS = (
    (pipeline_bp, "/api/pipeline"),
    (metrics_bp, ""),
)

__all__ = [
    "BLUEPRINTS",
    "metrics_bp",
    "pipeline_bp",
]

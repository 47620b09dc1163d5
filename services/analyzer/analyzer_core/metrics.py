from __future__ import annotations

from prometheus_client import Counter, Histogram

analyses_total = Counter("analyses_total", "Resume analyses by outcome", ["outcome"])
analysis_stage_duration_seconds = Histogram(
    "analysis_stage_duration_seconds",
    "Wall time of one pipeline stage, model call included",
    ["stage"],
    buckets=(0.5, 1, 2, 5, 10, 20, 30, 60, 120),
)
analysis_stage_failures_total = Counter(
    "analysis_stage_failures_total", "Pipeline stage failures", ["stage", "kind"]
)

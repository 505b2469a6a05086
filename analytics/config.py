from __future__ import annotations

"""Analytics configuration (hyperparameters) using Pydantic."""

from pydantic import BaseModel, Field


class AnalyticsConfig(BaseModel):
    """Hyperparameters for topic analytics and smoothing.

    - prior_strength: pseudo-units pulling a topic's accuracy toward the overall mean (>=0)
    - weak_threshold: adjusted accuracy below which a topic is reported weak
    - smoothing_span: EWMA span in sessions (>1)
    """

    prior_strength: float = Field(2.0, ge=0)
    weak_threshold: float = Field(0.7, ge=0, le=1)
    smoothing_span: int = Field(5, gt=1)

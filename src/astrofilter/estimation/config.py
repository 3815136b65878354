"""Configuration of the sequential estimator."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class EstimatorConfig:
    """Configuration for :class:`~astrofilter.estimation.KalmanEstimator`.

    Args:
        max_workers: Number of threads used to propagate the reference
            trajectories to each observation epoch. ``1`` propagates them
            sequentially.
        max_condition_number: Largest accepted condition number of the
            innovation covariance. Observations whose innovation covariance
            is worse conditioned raise
            :class:`~astrofilter.errors.InnovationCovarianceError`.
    """

    max_workers: int = 1
    max_condition_number: float = 1.0e14

    def __post_init__(self) -> None:
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")
        if self.max_condition_number <= 1.0:
            raise ValueError(
                f"max_condition_number must be greater than 1, got {self.max_condition_number}"
            )

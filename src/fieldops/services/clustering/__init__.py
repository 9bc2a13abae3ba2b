"""Spatial clustering of located jobs."""

from .engine import ALGORITHM_NAME, ClusteringEngine, ClusteringResult

__all__ = ["ALGORITHM_NAME", "ClusteringEngine", "ClusteringResult"]

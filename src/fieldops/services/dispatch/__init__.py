"""Cluster to technician assignment."""

from .assigner import DispatchAssigner, DispatchResult

__all__ = ["DispatchAssigner", "DispatchResult"]

"""
Tracking module for run monitoring and logging
"""

from .mlflow_tracker import MLflowTracker, tracker, get_tracker

__all__ = ["MLflowTracker", "tracker", "get_tracker"]

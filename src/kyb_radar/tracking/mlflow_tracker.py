"""
MLflow Tracking for the KYB Early-Risk Radar

Records agent executions and pipeline runs. Tracking is switched off unless
MLFLOW_TRACKING_URI is set, and a tracking failure never changes a result.
"""

import json
import os
from contextlib import ExitStack, contextmanager
from typing import Any, Dict, Iterator, List, Optional

import mlflow
from loguru import logger


class MLflowTracker:
    """MLflow tracker for KYB runs"""

    def __init__(self, tracking_uri: Optional[str] = None, experiment_name: Optional[str] = None):
        self.tracking_uri = tracking_uri if tracking_uri is not None else os.getenv("MLFLOW_TRACKING_URI")
        self.experiment_name = experiment_name or os.getenv("MLFLOW_EXPERIMENT_NAME", "kyb-radar")
        self.enabled = bool(self.tracking_uri)
        self._configured = False

    def _ready(self) -> bool:
        if not self.enabled:
            return False
        if self._configured:
            return True
        try:
            mlflow.set_tracking_uri(self.tracking_uri)
            mlflow.set_experiment(self.experiment_name)
            self._configured = True
            logger.info(f"MLflow tracking set to: {self.tracking_uri} (experiment {self.experiment_name})")
        except Exception as e:
            logger.warning(f"Failed to configure MLflow, tracking disabled: {e}")
            self.enabled = False
        return self._configured

    @contextmanager
    def span(self, name: str, **attributes: Any) -> Iterator[Optional[Any]]:
        """Open an MLflow span when tracking is on; yields None otherwise."""
        with ExitStack() as stack:
            span = None
            if self._ready():
                try:
                    span = stack.enter_context(mlflow.start_span(name=name))
                    for key, value in attributes.items():
                        span.set_attribute(key, value)
                except Exception as e:
                    logger.warning(f"Failed to start MLflow span {name}: {e}")
            yield span

    def log_agent_execution(self,
                            agent_name: str,
                            input_data: Dict[str, Any],
                            response_data: Any,
                            execution_time_ms: float,
                            success: bool,
                            red_flagged: bool = False,
                            red_flag_reason: Optional[str] = None):
        """Log individual agent execution"""
        if not self._ready():
            return
        try:
            with mlflow.start_run(nested=True, run_name=f"agent_{agent_name}"):
                mlflow.log_metrics({
                    "execution_time_ms": execution_time_ms,
                    "success": int(success),
                    "red_flagged": int(red_flagged),
                })
                mlflow.log_params({
                    "agent_name": agent_name,
                    "input_size": len(json.dumps(input_data, default=str)),
                })
                if response_data is not None and success:
                    response_json = json.dumps(response_data, default=str, indent=2)
                    if len(response_json) < 10000:
                        mlflow.log_text(response_json, artifact_file="response.json")
                if red_flagged and red_flag_reason:
                    mlflow.log_text(red_flag_reason, artifact_file="red_flag.txt")
        except Exception as e:
            logger.warning(f"Failed to log agent execution to MLflow: {e}")

    def log_kyb_run(self,
                    customer_id: str,
                    outcome: Dict[str, Any],
                    agents_called: List[str],
                    execution_time_ms: float):
        """Log a completed pipeline run"""
        if not self._ready():
            return
        try:
            risk = outcome.get("risk_assessment", {})
            with mlflow.start_run(run_name=f"kyb_{customer_id}"):
                mlflow.log_metrics({
                    "risk_score": risk.get("score", 0),
                    "triggers_fired": len(risk.get("triggers_fired", [])),
                    "agents_called": len(agents_called),
                    "execution_time_ms": execution_time_ms,
                })
                mlflow.log_params({
                    "customer_id": customer_id,
                    "risk_band": risk.get("risk_band", ""),
                    "journey_type": outcome.get("journey_type", ""),
                })
                mlflow.log_dict(outcome, artifact_file="kyb_outcome.json")
        except Exception as e:
            logger.warning(f"Failed to log KYB run to MLflow: {e}")


# Global tracker instance (lazy initialization)
_tracker = None


def get_tracker() -> MLflowTracker:
    """Get or create the global tracker instance"""
    global _tracker
    if _tracker is None:
        _tracker = MLflowTracker()
    return _tracker


class TrackerProxy:
    """Proxy object that lazy-initializes the tracker on first use"""
    def __getattr__(self, name):
        return getattr(get_tracker(), name)


tracker = TrackerProxy()

"""
Timing helpers for long-running recap and batch operations
"""

import time

from flask import current_app, g, has_app_context, has_request_context

from pickpool.utils.logging_config import get_logger

logger = get_logger(__name__)


def _threshold(default):
    if has_app_context():
        return current_app.config.get("SLOW_OPERATION_THRESHOLD", default)
    return default


class PerformanceMonitor:
    """Context manager for monitoring performance of code blocks"""

    def __init__(self, operation_name, log_threshold=None):
        self.operation_name = operation_name
        self.log_threshold = log_threshold
        self.start_time = None
        self.duration = None

    def __enter__(self):
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.time() - self.start_time
        threshold = (
            self.log_threshold if self.log_threshold is not None else _threshold(30.0)
        )

        if exc_type:
            logger.error(
                f"Operation '{self.operation_name}' failed after {self.duration:.3f}s: {exc_val}"
            )
        elif self.duration > threshold:
            logger.warning(
                f"Operation '{self.operation_name}' took {self.duration:.3f}s "
                f"(threshold: {threshold}s)"
            )
        else:
            logger.info(
                f"Operation '{self.operation_name}' completed in {self.duration:.3f}s"
            )

        # Request-level aggregation when running inside a view
        if has_request_context():
            metrics = g.setdefault("performance_metrics", [])
            metrics.append(
                {
                    "operation": self.operation_name,
                    "duration": self.duration,
                    "success": exc_type is None,
                }
            )
        return False

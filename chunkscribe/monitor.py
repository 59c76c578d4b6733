import time
from typing import Any, Dict, Optional

from .logging_config import get_logger

logger = get_logger(__name__)

COMPONENTS = ("capture", "recognition", "cleanup")


def _empty_metrics() -> Dict[str, Any]:
    return {
        "total_requests": 0,
        "total_time": 0.0,
        "processing_times": [],
        "errors": 0,
        "timeouts": 0,
        "unparsed": 0,
        "fallbacks": 0,
    }


class PipelineMonitor:
    """Counters and timings for the capture, recognition and cleanup steps.

    Steady-state failures are absorbed to keep the chunk loop alive, so this
    is where they become visible.
    """

    def __init__(self):
        self.metrics = {component: _empty_metrics() for component in COMPONENTS}
        self.inserted_fragments = 0
        self.dropped_inserts = 0
        self.last_report_time = time.time()

    def record_request(self, component: str, processing_time: float):
        """Record a completed request."""
        if component not in self.metrics:
            return

        metrics = self.metrics[component]
        metrics["total_requests"] += 1
        metrics["total_time"] += processing_time
        metrics["processing_times"].append(processing_time)

        # Keep only recent samples for moving averages
        if len(metrics["processing_times"]) > 100:
            metrics["processing_times"] = metrics["processing_times"][-50:]

    def record_error(self, component: str, error_type: str = "general"):
        """Record an error, a timeout, an unparsed output or a fallback."""
        if component not in self.metrics:
            return

        if error_type == "timeout":
            self.metrics[component]["timeouts"] += 1
        elif error_type == "unparsed":
            self.metrics[component]["unparsed"] += 1
        elif error_type == "fallback":
            self.metrics[component]["fallbacks"] += 1
        else:
            self.metrics[component]["errors"] += 1

    def record_insert(self, inserted: bool):
        if inserted:
            self.inserted_fragments += 1
        else:
            self.dropped_inserts += 1

    def get_stats(self, component: Optional[str] = None) -> Dict[str, Any]:
        """Get statistics for one component, or for all of them plus insert counters."""
        if component:
            return self._get_component_stats(component)

        stats = {comp: self._get_component_stats(comp) for comp in self.metrics}
        stats["inserts"] = {"inserted": self.inserted_fragments, "dropped": self.dropped_inserts}
        return stats

    def _get_component_stats(self, component: str) -> Dict[str, Any]:
        if component not in self.metrics:
            return {}

        metrics = self.metrics[component]
        avg_processing_time = 0.0
        if metrics["processing_times"]:
            avg_processing_time = sum(metrics["processing_times"]) / len(metrics["processing_times"])

        return {
            "total_requests": metrics["total_requests"],
            "avg_processing_time": avg_processing_time,
            "recent_processing_times": metrics["processing_times"][-10:],
            "errors": metrics["errors"],
            "timeouts": metrics["timeouts"],
            "unparsed": metrics["unparsed"],
            "fallbacks": metrics["fallbacks"],
            "success_rate": self._calculate_success_rate(metrics),
        }

    def _calculate_success_rate(self, metrics: Dict[str, Any]) -> float:
        total = metrics["total_requests"]
        failures = metrics["errors"] + metrics["timeouts"] + metrics["unparsed"] + metrics["fallbacks"]

        if total == 0:
            return 0.0

        return max(0.0, (total - failures) / total * 100.0)

    def should_report(self, interval: float = 60.0) -> bool:
        """Check if it's time to report pipeline stats."""
        current_time = time.time()
        if current_time - self.last_report_time >= interval:
            self.last_report_time = current_time
            return True
        return False

    def generate_report(self) -> str:
        report_lines = ["=== Pipeline Report ==="]

        for component in COMPONENTS:
            stats = self._get_component_stats(component)
            report_lines.append(f"\n{component.upper()}:")
            report_lines.append(f"  Total Requests: {stats['total_requests']}")
            report_lines.append(f"  Avg Processing Time: {stats['avg_processing_time']:.2f}s")
            report_lines.append(f"  Success Rate: {stats['success_rate']:.1f}%")
            report_lines.append(f"  Errors: {stats['errors']}, Timeouts: {stats['timeouts']}, Unparsed: {stats['unparsed']}, Fallbacks: {stats['fallbacks']}")

        report_lines.append(f"\nINSERTS: {self.inserted_fragments} inserted, {self.dropped_inserts} dropped")
        return "\n".join(report_lines)


# Global monitor instance
_pipeline_monitor = None


def get_pipeline_monitor() -> PipelineMonitor:
    """Get the global pipeline monitor instance."""
    global _pipeline_monitor
    if _pipeline_monitor is None:
        _pipeline_monitor = PipelineMonitor()
    return _pipeline_monitor


def log_performance_if_needed(monitor: Optional[PipelineMonitor] = None):
    """Log the pipeline report if enough time has passed."""
    monitor = monitor or get_pipeline_monitor()
    if monitor.should_report():
        logger.info(monitor.generate_report())

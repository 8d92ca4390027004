"""
CloudWatch metric emission for pipeline run counters.

Publishing is best effort: a failure is logged and never fails the run.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from hemnet_images.util.aws import create_client

logger = logging.getLogger(__name__)

NAMESPACE = "HemnetImages"


class MetricsEmitter:
    """Publish run counters for one lambda to CloudWatch."""

    def __init__(self, config, stage: str, cloudwatch_client=None):
        """
        Initialize metrics emitter.

        Args:
            config: HemnetConfig for the invocation
            stage: Value of the ``Stage`` dimension (UploadImages, EmailImages)
            cloudwatch_client: Optional pre-built boto3 CloudWatch client
        """
        self.stage = stage
        self.cloudwatch = None

        if not config.metrics_enabled:
            logger.debug("Metrics disabled by configuration")
            return

        self.cloudwatch = cloudwatch_client or create_client('cloudwatch', config)

    def emit_metric(self, metric_name: str, value: Union[int, float], unit: str = "Count") -> None:
        """Emit a single metric."""
        self.emit_batch_metrics({metric_name: value}, unit=unit)

    def emit_batch_metrics(self, metrics: Dict[str, Union[int, float]],
                           unit: str = "Count",
                           dimensions: Optional[Dict[str, str]] = None) -> None:
        """
        Emit multiple metrics in a batch.

        Args:
            metrics: Dictionary of metric_name -> value
            unit: CloudWatch unit for all metrics
            dimensions: Extra dimensions added to the Stage dimension
        """
        if not self.cloudwatch:
            logger.debug(f"Batch metrics: {metrics} (CloudWatch unavailable)")
            return

        all_dimensions = {'Stage': self.stage}
        all_dimensions.update(dimensions or {})

        try:
            metric_data = []
            timestamp = datetime.now(timezone.utc)

            for metric_name, value in metrics.items():
                metric_data.append({
                    'MetricName': metric_name,
                    'Value': value,
                    'Unit': unit,
                    'Timestamp': timestamp,
                    'Dimensions': [{'Name': k, 'Value': str(v)} for k, v in all_dimensions.items()]
                })

            # Max 20 metrics per call
            for i in range(0, len(metric_data), 20):
                self.cloudwatch.put_metric_data(
                    Namespace=NAMESPACE,
                    MetricData=metric_data[i:i + 20]
                )

            logger.debug(f"Emitted {len(metrics)} metrics in batch")

        except Exception as e:
            logger.error(f"Failed to emit batch metrics: {e}")

    def emit_run_summary(self, summary: Dict[str, Any]) -> None:
        """Emit the numeric counters of a run summary."""
        numeric_metrics = {
            key: value for key, value in summary.items()
            if isinstance(value, (int, float)) and not isinstance(value, bool)
            and not key.endswith('_seconds')
        }
        if numeric_metrics:
            self.emit_batch_metrics(numeric_metrics)
        if 'duration_seconds' in summary:
            self.emit_metric('ExecutionTime', summary['duration_seconds'], unit='Seconds')

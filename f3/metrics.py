"""
Transfer metrics for f3.

Completed GET and PUT operations report their byte count to a metrics
backend. Metrics are best effort: the drivers log sender failures and
carry on.
"""

import logging
import socket
from datetime import datetime
from typing import Any, Optional, Protocol

from botocore.exceptions import BotoCoreError, ClientError

from f3.errors import TelemetryError

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "f3"


class MetricsSender(Protocol):
    """Interface for metrics backends."""
    
    def send_get(self, size: int, timestamp: datetime) -> None:
        """Send the size of a served (GET) object and the operation's timestamp."""
        ...
    
    def send_put(self, size: int, timestamp: datetime) -> None:
        """Send the size of a stored (PUT) object and the operation's timestamp."""
        ...


class NopSender:
    """Metrics sender used when metrics are disabled."""
    
    def send_get(self, size: int, timestamp: datetime) -> None:
        return None
    
    def send_put(self, size: int, timestamp: datetime) -> None:
        return None


class CloudWatchSender:
    """Sends transfer metrics to Amazon CloudWatch."""
    
    def __init__(
        self,
        client: Any,
        namespace: str = DEFAULT_NAMESPACE,
        hostname: Optional[str] = None,
    ):
        """
        Initialize the sender.
        
        Args:
            client: A boto3 CloudWatch client (thread-safe, may be shared)
            namespace: CloudWatch namespace for all metrics
            hostname: Value of the Hostname dimension, defaults to this host
        """
        self.client = client
        self.namespace = namespace
        self.hostname = hostname or socket.gethostname()
    
    def send_get(self, size: int, timestamp: datetime) -> None:
        self._put_metric("GET", size, timestamp)
    
    def send_put(self, size: int, timestamp: datetime) -> None:
        self._put_metric("PUT", size, timestamp)
    
    def _put_metric(self, operation: str, size: int, timestamp: datetime) -> None:
        try:
            self.client.put_metric_data(
                Namespace=self.namespace,
                MetricData=[
                    {
                        "MetricName": operation,
                        "Dimensions": [
                            {"Name": "Hostname", "Value": self.hostname},
                        ],
                        "Timestamp": timestamp,
                        "Unit": "Bytes",
                        "Value": float(size),
                    }
                ],
            )
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "Unknown")
            logger.error(f"Failed to send CloudWatch {operation} metric. Code: {code}")
            raise TelemetryError(f"Failed to send CloudWatch {operation} metric: {e}") from e
        except BotoCoreError as e:
            logger.error(f"Failed to send CloudWatch {operation} metric: {e}")
            raise TelemetryError(f"Failed to send CloudWatch {operation} metric: {e}") from e
        
        logger.debug(f"Published {operation} metric: {size} bytes")

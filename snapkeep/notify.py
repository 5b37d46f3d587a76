"""
Run outcome notifications.

The optional NOTIFY_TARGET selects the channel:
- http(s) URL: JSON POST to a webhook
- arn:aws:sns:... : publish to an SNS topic

A notification that cannot be delivered is logged and otherwise ignored;
it never changes the outcome of the run.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import boto3
import requests
from botocore.exceptions import BotoCoreError, ClientError


logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Delivers one message per run."""

    def __init__(self, target: str):
        self.target = target

    @staticmethod
    def build_payload(status: str, message: str, **details) -> Dict[str, Any]:
        payload = {'status': status, 'message': message}
        payload.update(details)
        return payload

    @abstractmethod
    def send(self, status: str, message: str, **details) -> bool:
        """Send a notification; return True on success."""
        pass


class WebhookNotifier(Notifier):
    """POST a JSON payload to a URL."""

    def __init__(self, target: str, timeout: int = 30):
        super().__init__(target)
        self.timeout = timeout

    def send(self, status: str, message: str, **details) -> bool:
        payload = self.build_payload(status, message, **details)
        try:
            response = requests.post(self.target, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.warning(f"Webhook notification failed: {e}")
            return False

        logger.info(f"Notification sent to {self.target}")
        return True


class SNSNotifier(Notifier):
    """Publish to an AWS SNS topic."""

    def __init__(self, target: str):
        super().__init__(target)
        # arn:aws:sns:<region>:<account>:<topic>
        parts = target.split(':')
        self.region = parts[3] if len(parts) > 5 and parts[3] else None

    def send(self, status: str, message: str, **details) -> bool:
        payload = self.build_payload(status, message, **details)
        try:
            client = boto3.client('sns', region_name=self.region)
            client.publish(
                TopicArn=self.target,
                Subject=f"snapkeep backup {status}",
                Message=json.dumps(payload, default=str)
            )
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"SNS notification failed: {e}")
            return False

        logger.info(f"Notification published to {self.target}")
        return True


def create_notifier(target: Optional[str]) -> Optional[Notifier]:
    """
    Factory function to create the notifier for a target.

    Args:
        target: Webhook URL, SNS topic ARN, or None

    Returns:
        Notifier instance, or None when no target is configured

    Raises:
        ValueError: If the target is not a supported kind
    """
    if not target:
        return None
    if target.startswith(('http://', 'https://')):
        return WebhookNotifier(target)
    if target.startswith('arn:aws:sns:'):
        return SNSNotifier(target)
    raise ValueError(f"Unsupported notification target: {target}")

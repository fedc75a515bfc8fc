"""External service clients (Slack webhooks, AWS ECR).

This module provides factory functions for creating configured client instances
from centralized configuration.
"""

from opsutils.config import Settings, get_settings
from opsutils.core.params import ObjParams

from .ecr import ECRImages
from .slack import SlackMessages


def create_slack_client(
    settings: Settings | None = None,
    params: ObjParams | None = None,
) -> SlackMessages:
    """Create a configured Slack webhook client.

    Args:
        settings: Optional Settings. If None, uses get_settings().
        params: Optional object parameters shared with the client.

    Returns:
        Configured SlackMessages instance.

    Example:
        ```python
        from opsutils.clients import create_slack_client

        create_slack_client().post("nightly sync complete")
        ```
    """
    return SlackMessages.from_config(settings or get_settings(), params)


def create_ecr_client(
    settings: Settings | None = None,
    params: ObjParams | None = None,
) -> ECRImages:
    """Create a configured ECR images client.

    Args:
        settings: Optional Settings. If None, uses get_settings().
        params: Optional object parameters shared with the client.

    Returns:
        Configured ECRImages instance.
    """
    return ECRImages.from_config(settings or get_settings(), params)


__all__ = [
    "ECRImages",
    "SlackMessages",
    "create_ecr_client",
    "create_slack_client",
]

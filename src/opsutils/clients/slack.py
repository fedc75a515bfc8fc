"""Slack incoming-webhook client.

Posts plain-text messages to a Slack channel through its incoming webhook,
using the HTTP request executor for delivery and retries.

## Usage

```python
from opsutils.clients.slack import SlackMessages
from opsutils.core.params import ObjParams

slack = SlackMessages(ObjParams.default())
slack.post("deployment finished")
```

Set `NO_SLACK=true` to print messages to `params.log_out` instead of posting
them (dry run).
"""

import attrs

from opsutils.config import HTTPClientConfig, Settings, SlackConfig
from opsutils.core.params import ObjParams
from opsutils.core.utils import indent_json
from opsutils.foundation.http import Method, RequestExecutor
from opsutils.foundation.logger import TRACE, traced

from .mixins import ExecutorMixin, LoggerMixin


@attrs.define(frozen=False, slots=True)
class SlackMessages(ExecutorMixin, LoggerMixin):
    """Client for posting messages to a Slack incoming webhook.

    Attributes:
        params: Object parameters (logger, output stream, cancellation).
        executor: Request executor; an HTTPExecutor is created when None.
        config: Webhook settings (credentials, host, dry run). Defaults to
            the environment.
        http_config: Settings for the default executor.
    """

    params: ObjParams = attrs.field(factory=ObjParams.default)
    executor: RequestExecutor | None = attrs.field(default=None)
    config: SlackConfig = attrs.field(factory=SlackConfig.from_env)
    http_config: HTTPClientConfig | None = attrs.field(default=None)

    def __attrs_post_init__(self) -> None:
        self.executor = self._default_executor(self.executor, self.params, self.http_config)

    @classmethod
    def from_config(cls, settings: Settings, params: ObjParams | None = None) -> "SlackMessages":
        """Create a SlackMessages client from Settings.

        Example:
            ```python
            from opsutils.config import get_settings

            slack = SlackMessages.from_config(get_settings())
            ```
        """
        return cls(
            params=params or ObjParams.default(),
            config=settings.slack,
            http_config=settings.http,
        )

    @property
    def post_url(self) -> str:
        return f"https://{self.config.webhook_host}/services/{self.config.webhook_credentials}"

    @property
    def dry_run(self) -> bool:
        return self.config.dry_run

    @traced
    def post(self, message: str) -> None:
        """Post `message` to the webhook, or print it in dry-run mode.

        Args:
            message: Message text.

        Raises:
            ExchangeError: The webhook request failed (see
                `opsutils.foundation.exceptions`).
        """
        if self.dry_run:
            self.params.log_out.write(message)
            return

        body = indent_json({"text": message}, 0, 2)
        if self.params.logger.isEnabledFor(TRACE):
            self.params.logger.log(TRACE, "Slack message body", extra={"body": body})

        assert self.executor is not None
        result = self.executor.exchange(Method.POST, self.post_url, body)
        result.close()
        self._logger.debug("Posted Slack message", extra={"status": result.status_code})

"""
Scoped overrides of server-side settings.

The server applies some settings eventually, so instead of sleeping a fixed
time after an update the new value is polled until it is visible. The
original value is restored on every exit path, even when the scenario is
cancelled.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional

from ..config import HarnessConfig
from ..executor import finish_shielded
from ..utils import ApiError, RetryPolicy, SettingNotAppliedError, get_logger, retry_async
from .client import ManagementClient

logger = get_logger(__name__)



@dataclass(frozen=True)
class Setting:
    """Where a server-side setting is queried and updated."""

    name: str
    query_path: str
    update_path: str
    key: str
    update_key: Optional[str] = None
    update_extra: dict[str, Any] = field(default_factory=dict)
    default: Any = None

    def update_body(self, value: Any) -> dict[str, Any]:
        """Body of an update request setting the value."""
        return {**self.update_extra, self.update_key or self.key: value}


HLS_NO_CONTEXT = Setting(
    name="hls-no-context",
    query_path="/terraform/v1/mgmt/hphls/query",
    update_path="/terraform/v1/mgmt/hphls/update",
    key="noHlsCtx",
)

PUBLISH_SECRET = Setting(
    name="publish-secret",
    query_path="/terraform/v1/hooks/srs/secret/query",
    update_path="/terraform/v1/hooks/srs/secret/update",
    key="publish",
    update_key="secret",
)

WEBSITE_TITLE = Setting(
    name="website-title",
    query_path="/terraform/v1/mgmt/beian/query",
    update_path="/terraform/v1/mgmt/beian/update",
    key="title",
    update_key="text",
    update_extra={"beian": "title"},
    default="SRS",
)


def poll_policy(config: HarnessConfig) -> RetryPolicy:
    """Retry policy for setting polls from the scenario configuration."""
    return RetryPolicy(
        max_attempts=config.scenario.setting_poll_attempts,
        retry_delay=config.scenario.setting_poll_interval,
    )


async def query_setting(client: ManagementClient, setting: Setting) -> Any:
    """Read the current value of a setting."""
    data = await client.request(setting.query_path)
    if not isinstance(data, dict):
        raise ApiError(f"Invalid {setting.name} response: {data}", path=setting.query_path)
    return data.get(setting.key)


async def wait_for_setting(
    client: ManagementClient,
    setting: Setting,
    value: Any,
    policy: Optional[RetryPolicy] = None,
) -> None:
    """
    Poll a setting until the server reports the value.

    Raises:
        SettingNotAppliedError: If the value is still not visible once the
            policy is exhausted
    """

    async def check() -> None:
        current = await query_setting(client, setting)
        if current != value:
            raise SettingNotAppliedError(
                f"{setting.name} is {current!r}, expected {value!r}", path=setting.query_path
            )

    await retry_async(
        check,
        policy=policy or poll_policy(client.config),
        retry_on=(ApiError,),
        operation_name=f"apply {setting.name}",
        logger=logger,
    )


async def update_setting(
    client: ManagementClient,
    setting: Setting,
    value: Any,
    policy: Optional[RetryPolicy] = None,
) -> None:
    """Update a setting and wait until the server reports it."""
    await client.request(setting.update_path, setting.update_body(value))
    await wait_for_setting(client, setting, value, policy)
    logger.debug(f"{setting.name} set to {value!r}")


async def _restore(
    client: ManagementClient,
    setting: Setting,
    value: Any,
    policy: Optional[RetryPolicy],
) -> None:
    await finish_shielded(update_setting(client, setting, value, policy))


async def _restore_quietly(
    client: ManagementClient,
    setting: Setting,
    value: Any,
    policy: Optional[RetryPolicy],
) -> None:
    """Restore while another error is already propagating."""
    try:
        await _restore(client, setting, value, policy)
    except ApiError as e:
        logger.warning(f"Restore {setting.name} failed: {e}")


@asynccontextmanager
async def override_setting(
    client: ManagementClient,
    setting: Setting,
    value: Any,
    policy: Optional[RetryPolicy] = None,
) -> AsyncIterator[Any]:
    """
    Set a server-side setting for the duration of a block.

    Args:
        client: Management API client
        setting: Setting to override
        value: Value used inside the block
        policy: Poll policy (scenario configuration if None)

    Yields:
        The original value

    Raises:
        ApiError: If querying or updating fails
        SettingNotAppliedError: If the server never reports the new value
    """
    original = await query_setting(client, setting)
    if original in (None, "") and setting.default is not None:
        original = setting.default

    logger.info(f"Override {setting.name}: {original!r} -> {value!r}")
    try:
        await update_setting(client, setting, value, policy)
    except ApiError:
        await _restore_quietly(client, setting, original, policy)
        raise

    try:
        yield original
    except BaseException:
        await _restore_quietly(client, setting, original, policy)
        raise
    else:
        await _restore(client, setting, original, policy)
    logger.debug(f"Restored {setting.name} to {original!r}")

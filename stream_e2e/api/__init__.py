"""Management API access."""

from stream_e2e.api.certs import create_self_signed_cert
from stream_e2e.api.client import ManagementClient
from stream_e2e.api.settings import (
    HLS_NO_CONTEXT,
    PUBLISH_SECRET,
    WEBSITE_TITLE,
    Setting,
    finish_shielded,
    override_setting,
    poll_policy,
    query_setting,
    update_setting,
    wait_for_setting,
)

__all__ = [
    "HLS_NO_CONTEXT",
    "ManagementClient",
    "PUBLISH_SECRET",
    "Setting",
    "WEBSITE_TITLE",
    "create_self_signed_cert",
    "finish_shielded",
    "override_setting",
    "poll_policy",
    "query_setting",
    "update_setting",
    "wait_for_setting",
]

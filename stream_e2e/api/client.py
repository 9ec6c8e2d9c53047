"""
Management API client.

Every management endpoint is a JSON POST under ``/terraform/v1`` answering
with an envelope ``{"code": 0, "data": ...}``. Requests are authenticated with
a bearer token obtained by logging in with the system password.
"""

from typing import Any, Optional

import httpx

from ..config import HarnessConfig
from ..utils import ApiError, RetryPolicy, get_logger, retry_async

logger = get_logger(__name__)


class ManagementClient:
    """
    Async client for the management API.

    Use as an async context manager so the underlying connection pool is
    closed on every exit path.
    """

    LOGIN_PATH = "/terraform/v1/mgmt/login"
    VERSIONS_PATH = "/terraform/v1/mgmt/versions"

    def __init__(
        self,
        config: HarnessConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize client.

        Args:
            config: Harness configuration (endpoints, password, timeouts)
            transport: Optional httpx transport, e.g. httpx.MockTransport
        """
        self.config = config
        self._client = httpx.AsyncClient(
            base_url=config.endpoints.api,
            timeout=config.scenario.request_timeout,
            verify=not config.server.https_insecure_verify,
            transport=transport,
        )
        self._token: Optional[str] = None

    async def __aenter__(self) -> "ManagementClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the connection pool."""
        await self._client.aclose()

    async def login(self, password: Optional[str] = None) -> str:
        """
        Log in with a password and remember the token.

        Args:
            password: Password to use (configured system password if None)

        Returns:
            Bearer token

        Raises:
            ApiError: If login fails or returns no token
        """
        secret = password if password is not None else self.config.server.system_password
        data = await self.request(self.LOGIN_PATH, {"password": secret}, authenticated=False)

        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise ApiError(f"Login returned no token: {data}", path=self.LOGIN_PATH)

        self._token = token
        logger.debug("Logged in to management API")
        return token

    async def _auth_headers(self) -> dict[str, str]:
        if self._token is None and self.config.server.system_password:
            await self.login()
        if self._token is None:
            return {}
        return {"Authorization": f"Bearer {self._token}"}

    async def request(
        self,
        path: str,
        body: Optional[Any] = None,
        authenticated: bool = True,
    ) -> Any:
        """
        POST a JSON body to a management endpoint.

        Args:
            path: Endpoint path, e.g. "/terraform/v1/mgmt/hphls/query"
            body: JSON body (empty object if None)
            authenticated: Send the bearer token

        Returns:
            The ``data`` member of the response envelope

        Raises:
            ApiError: On transport errors, HTTP errors or a non-zero code
        """
        headers = await self._auth_headers() if authenticated else {}

        logger.debug(f"POST {path}")
        try:
            response = await self._client.post(
                path, json=body if body is not None else {}, headers=headers
            )
        except httpx.HTTPError as e:
            raise ApiError(f"Request {path} failed: {e}", path=path) from e

        return self._unwrap(path, response)

    def _unwrap(self, path: str, response: httpx.Response) -> Any:
        """Check status and envelope, return the data member."""
        if response.status_code != 200:
            raise ApiError(
                f"Request {path} failed with status {response.status_code}: "
                f"{response.text[:200]}",
                path=path,
                status=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ApiError(
                f"Request {path} returned invalid JSON: {response.text[:200]}",
                path=path,
                status=response.status_code,
            ) from e

        if not isinstance(payload, dict):
            raise ApiError(f"Request {path} returned {payload!r}", path=path, status=200)

        code = payload.get("code")
        if code != 0:
            raise ApiError(
                f"Request {path} failed with code {code}: {payload.get('data')}",
                path=path,
                status=response.status_code,
                code=code,
            )
        return payload.get("data")

    async def fetch_text(self, url: str) -> str:
        """
        GET an absolute URL and return its body.

        Args:
            url: Full URL, e.g. a playlist on the HTTP endpoint

        Returns:
            Response body as text

        Raises:
            ApiError: On transport or HTTP errors
        """
        logger.debug(f"GET {url}")
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            raise ApiError(f"Fetch {url} failed: {e}", path=url) from e

        if response.status_code != 200:
            raise ApiError(
                f"Fetch {url} failed with status {response.status_code}",
                path=url,
                status=response.status_code,
            )
        return response.text

    async def query_version(self) -> str:
        """
        Query the server version.

        Raises:
            ApiError: If the request fails or the version is empty
        """
        data = await self.request(self.VERSIONS_PATH)
        version = data.get("version") if isinstance(data, dict) else None
        if not version:
            raise ApiError(f"Empty version: {data}", path=self.VERSIONS_PATH)
        return version

    async def wait_ready(self, policy: Optional[RetryPolicy] = None) -> str:
        """
        Poll the server until it answers.

        Args:
            policy: Retry policy (configured poll attempts and interval if None)

        Returns:
            Server version
        """
        policy = policy or RetryPolicy(
            max_attempts=self.config.scenario.setting_poll_attempts,
            retry_delay=self.config.scenario.setting_poll_interval,
        )
        version = await retry_async(
            self.query_version,
            policy=policy,
            retry_on=(ApiError,),
            operation_name="wait for management API",
            logger=logger,
        )
        logger.info(f"Management API ready, version {version}")
        return version

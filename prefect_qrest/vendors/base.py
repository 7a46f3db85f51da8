# Licensed under the Apache License, Version 2.0 (the "License"); you may
# not use this file except in compliance with the License. You may obtain
# a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS, WITHOUT
# WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the
# License for the specific language governing permissions and limitations
# under the License.
"""Common implementation of server helpers."""

import asyncio
import json
import os
from abc import ABC, abstractmethod
from collections.abc import Mapping
from importlib.metadata import PackageNotFoundError, version
from types import MappingProxyType
from typing import ClassVar

from prefect_qrest.exceptions import MissingConfiguration
from prefect_qrest.models import (
    GLOBAL_REGISTER,
    KernelExecution,
    SampleResult,
    ServerJobPayload,
    ServerMessage,
)
from prefect_qrest.models.interface import AsyncTransportInterface
from prefect_qrest.utils.logging import LoggingMixin

CFG_URL_KEY: str = "base_url"
CFG_TOKEN_KEY: str = "token"
CFG_USER_AGENT_KEY: str = "user_agent"
CFG_KERNEL_NAMES_KEY: str = "kernel_names"

try:
    USER_AGENT: str = f"prefect-qrest/{version('prefect-qrest')}"
except PackageNotFoundError:
    USER_AGENT = "prefect-qrest/dev"


class BaseServerHelper(LoggingMixin, ABC):
    """
    Base class of server helpers implementing `ServerHelperInterface`.

    It owns the backend configuration after initialization
    and guards token refresh so that only one login exchange is in flight.
    A helper instance serves one event loop at a time.
    """

    NAME: ClassVar[str] = ""
    """Backend name, identical to the registry key."""

    SECRET_KEYS: ClassVar[frozenset[str]] = frozenset({CFG_TOKEN_KEY})
    """Configuration keys never written into a serialized job handle."""

    def __init__(
        self,
        transport: AsyncTransportInterface | None = None,
    ):
        """Create uninitialized helper.

        Args:
            transport: Transport client used for the login exchange.
                The aiohttp transport is used when omitted.
        """
        self._config: dict[str, str] = {}
        self._transport = transport
        self._refresh_task: asyncio.Task | None = None

    def name(self) -> str:
        return self.NAME

    @property
    def backend_config(self) -> Mapping[str, str]:
        """Read-only view of the current backend configuration."""
        return MappingProxyType(self._config)

    @property
    def base_url(self) -> str:
        try:
            return self._config[CFG_URL_KEY]
        except KeyError:
            raise RuntimeError(f"{self.__class__.__name__} is not initialized.") from None

    @property
    def requires_login(self) -> bool:
        return False

    @property
    def transport(self) -> AsyncTransportInterface:
        if self._transport is None:
            from prefect_qrest.transport import AiohttpTransport

            self._transport = AiohttpTransport()
        return self._transport

    @abstractmethod
    def initialize(
        self,
        config: dict[str, str],
    ) -> None: ...

    @abstractmethod
    def get_headers(self) -> dict[str, str]: ...

    @abstractmethod
    def create_job(
        self,
        executions: list[KernelExecution],
    ) -> ServerJobPayload: ...

    @abstractmethod
    def extract_job_id(
        self,
        response: ServerMessage,
    ) -> str: ...

    @abstractmethod
    def construct_status_path(
        self,
        response_or_id: ServerMessage | str,
    ) -> str: ...

    @abstractmethod
    def job_is_done(
        self,
        status_response: ServerMessage,
    ) -> bool: ...

    @abstractmethod
    def process_results(
        self,
        response: ServerMessage,
        job_id: str,
    ) -> SampleResult: ...

    @abstractmethod
    def next_polling_interval(
        self,
        last_response: ServerMessage,
    ) -> float: ...

    def construct_results_path(
        self,
        job_id: str,
    ) -> str | None:
        return None

    def get_persistable_config(self) -> dict[str, str]:
        return {k: v for k, v in self._config.items() if k not in self.SECRET_KEYS}

    async def refresh_tokens(
        self,
        force_refresh: bool = False,
    ) -> str | None:
        """Asynchronously exchange credentials for a fresh token.

        Callers that arrive while an exchange is in flight wait for its result
        instead of issuing their own login request.
        There is no token freshness policy yet, so `force_refresh=False`
        performs the exchange as well.

        Args:
            force_refresh: Always perform the exchange.

        Raises:
            AuthenticationError: When the login response cannot be parsed.
                Previously held token is kept.

        Returns:
            Token in use after refresh, or None when the backend doesn't log in.
        """
        if not self.requires_login:
            return None
        loop = asyncio.get_running_loop()
        task = self._refresh_task
        if task is None or task.done() or task.get_loop() is not loop:
            task = loop.create_task(self._refresh())
            self._refresh_task = task
        else:
            self.logger.debug(f"Waiting for in-flight token refresh of {self.name()}.")
        return await asyncio.shield(task)

    async def _refresh(self) -> str:
        updates = await self._exchange_tokens()
        # Token and user identity are applied together.
        self._config.update(updates)
        self.logger.info(f"Token refreshed for {self.name()}.")
        return self._config[CFG_TOKEN_KEY]

    async def _exchange_tokens(self) -> dict[str, str]:
        """Perform the login exchange and return configuration updates."""
        raise NotImplementedError(f"{self.__class__.__name__} doesn't support login.")

    @staticmethod
    def get_value_or_default(
        config: Mapping[str, str],
        key: str,
        default: str | None = None,
    ) -> str | None:
        """Get value from config or return a default value. Empty string counts as absent."""
        value = config.get(key, None)
        if value is None or value == "":
            return default
        return value

    @staticmethod
    def get_env_var(
        key: str,
        default: str | None = None,
        required: bool = False,
        config_key: str | None = None,
    ) -> str | None:
        """Read an environment variable.

        Args:
            key: Environment variable name.
            default: Value returned when the variable is not set.
            required: Raise when the variable is not set.
            config_key: Configuration key reported with the error.

        Raises:
            MissingConfiguration: When a required variable is not set.
        """
        value = os.environ.get(key, None)
        if value is None or value == "":
            if required:
                raise MissingConfiguration(
                    reason=(
                        f"'{config_key or key}' is not configured and "
                        f"the {key} environment variable is not set but is required."
                    ),
                    key=config_key or key,
                )
            return default
        return value

    def resolve_value(
        self,
        config: Mapping[str, str],
        key: str,
        env_var: str | None = None,
        default: str | None = None,
        required: bool = False,
    ) -> str | None:
        """Resolve a configuration value from config, then environment, then default."""
        if (value := self.get_value_or_default(config, key)) is not None:
            return value
        if env_var is not None:
            value = self.get_env_var(env_var, default=default, required=required and default is None, config_key=key)
            if value is not None:
                return value
        if default is None and required:
            raise MissingConfiguration(
                reason=f"'{key}' is not configured but is required.",
                key=key,
            )
        return default

    def _record_kernel_names(
        self,
        executions: list[KernelExecution],
    ) -> list[str]:
        names = [e.name for e in executions]
        self._config[CFG_KERNEL_NAMES_KEY] = json.dumps(names)
        return names

    def _recorded_kernel_names(
        self,
        count: int,
    ) -> list[str]:
        if (encoded := self._config.get(CFG_KERNEL_NAMES_KEY, None)) is not None:
            names = json.loads(encoded)
            if len(names) == count:
                return names
            self.logger.warning(f"Recorded {len(names)} kernel names but backend returned {count} results.")
        if count == 1:
            return [GLOBAL_REGISTER]
        return [f"circuit_{i}" for i in range(count)]

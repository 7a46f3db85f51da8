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
"""Protocols for vendor-specific server helpers and the transport client."""

from typing import Any, Protocol, runtime_checkable

from prefect_qrest.models.data import KernelExecution, SampleResult, ServerJobPayload, ServerMessage


@runtime_checkable
class ServerHelperInterface(Protocol):
    """Interface abstraction of a REST backend.

    A hardware vendor must provide a server helper that implements
    all the interfaces defined with this protocol, and register it to the backend registry.
    Server helpers only build requests and interpret responses.
    Network communication is delegated to the job lifecycle driver,
    except for the login exchange of backends using bearer tokens.
    """

    @property
    def base_url(self) -> str:
        """Base URL that request paths are resolved against."""
        ...

    @property
    def requires_login(self) -> bool:
        """True when the backend needs a token from a login exchange."""
        ...

    def name(self) -> str:
        """Return a stable identifier matching the registry key."""
        ...

    def initialize(
        self,
        config: dict[str, str],
    ) -> None:
        """Validate and normalize backend configuration.

        Args:
            config: Backend configuration overrides.

        Raises:
            MissingConfiguration: When a required key is found in neither
                the configuration nor the environment.
        """
        ...

    def get_headers(self) -> dict[str, str]:
        """Build request headers from current configuration and authentication state."""
        ...

    def create_job(
        self,
        executions: list[KernelExecution],
    ) -> ServerJobPayload:
        """Build one job request carrying all kernel executions.

        Args:
            executions: Compiled circuits to run.

        Returns:
            Submission path, headers and body.
        """
        ...

    def extract_job_id(
        self,
        response: ServerMessage,
    ) -> str:
        """Read Job ID from the submission response.

        Raises:
            MalformedResponse: When the response has no Job ID.
        """
        ...

    def construct_status_path(
        self,
        response_or_id: ServerMessage | str,
    ) -> str:
        """Build the polling path from a submission response or a bare Job ID."""
        ...

    def construct_results_path(
        self,
        job_id: str,
    ) -> str | None:
        """Build the path of a separate results request.

        Returns:
            None when results are included in the status response.
        """
        ...

    def job_is_done(
        self,
        status_response: ServerMessage,
    ) -> bool:
        """Decide job completion from a status response.

        !!! NOTE
            This function must be pure. It raises error immediately when
            the backend reports a terminal failure, so that the driver
            doesn't keep polling a dead job.

        Raises:
            JobExecutionFailed: When the job terminated unsuccessfully.

        Returns:
            True on terminal success, False while the job is still pending.
        """
        ...

    def process_results(
        self,
        response: ServerMessage,
        job_id: str,
    ) -> SampleResult:
        """Normalize backend result encoding into a sample result.

        Raises:
            MalformedResponse: When an expected field cannot be parsed.
        """
        ...

    def next_polling_interval(
        self,
        last_response: ServerMessage,
    ) -> float:
        """Return a positive wait time in seconds before the next status check."""
        ...

    async def refresh_tokens(
        self,
        force_refresh: bool = False,
    ) -> str | None:
        """Asynchronously exchange long-lived credentials for a fresh token.

        Raises:
            AuthenticationError: When the login exchange fails.

        Returns:
            The token in use after refresh.
        """
        ...

    def get_persistable_config(self) -> dict[str, str]:
        """Return the configuration subset without secrets.

        This is enough to rebuild request paths and headers in another process
        once secrets are resolved again from the environment.
        """
        ...


@runtime_checkable
class AsyncTransportInterface(Protocol):
    """Interface abstraction of the HTTP transport client.

    Implementations raise `TransportError` on network failure or non-2xx status.
    """

    async def post(
        self,
        base_url: str,
        path: str,
        json_body: Any,
        headers: dict[str, str],
    ) -> ServerMessage:
        """Asynchronously send a POST request and return the parsed JSON response."""
        ...

    async def get(
        self,
        base_url: str,
        path: str,
        headers: dict[str, str],
    ) -> ServerMessage:
        """Asynchronously send a GET request and return the parsed JSON response."""
        ...

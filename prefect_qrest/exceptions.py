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
"""
This module defines custom exceptions.

Every error raised by a server helper, the transport client, or the job lifecycle
driver is one of the subclasses of `QuantumJobError`.
Each exception carries a `retry` flag, allowing the Prefect job runner to determine
whether to retry the task upon encountering an exception.
"""

from typing import Any


class QuantumJobError(Exception):
    """
    Base class of all quantum job errors.

    For instance, if a backend rejects the submitted circuit,
    the task execution is unlikely to succeed on the next attempt.
    In such cases the error is raised with `retry=False`.
    """

    prefix: str = "Quantum job failure"
    default_retry: bool = False

    def __init__(
        self,
        reason: str,
        job_id: str | None = None,
        error_code: str | int | None = None,
        retry: bool | None = None,
    ):
        """Define exception.

        Args:
            reason: A human readable explanation of the failure.
            job_id: Failed Job ID.
            error_code: Vendor-specific error code.
            retry: Either retry the job execution or not.
                The class default is used when omitted.
        """
        if error_code is not None:
            error_code = str(error_code)
            msg = f"{self.prefix} ({error_code}); {reason}"
        else:
            msg = f"{self.prefix}; {reason}"
        super().__init__(msg)
        self.reason = reason
        self.message = msg
        self.error_code = error_code
        self.retry = self.default_retry if retry is None else retry
        self.job_id = job_id

    def __str__(self) -> str:
        return self.message


class MissingConfiguration(QuantumJobError):
    """A required configuration key is absent from both the configuration and the environment."""

    prefix = "Missing configuration"

    def __init__(
        self,
        reason: str,
        key: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(reason, **kwargs)
        self.key = key


class UnknownBackend(QuantumJobError):
    """No server helper is registered under the requested backend name."""

    prefix = "Unknown backend"


class TransportError(QuantumJobError):
    """
    Network or HTTP layer failure.

    This is distinct from a well-formed response reporting a failed job.
    The HTTP status is kept when the server answered.
    """

    prefix = "Transport failure"
    default_retry = True

    def __init__(
        self,
        reason: str,
        status: int | None = None,
        **kwargs: Any,
    ):
        super().__init__(reason, **kwargs)
        self.status = status


class MalformedResponse(QuantumJobError):
    """
    A backend violated its own documented response contract.

    The offending response is retained for diagnostics but never
    rendered into the message.
    """

    prefix = "Malformed response"

    def __init__(
        self,
        reason: str,
        response: Any = None,
        **kwargs: Any,
    ):
        super().__init__(reason, **kwargs)
        self.response = response


class JobExecutionFailed(QuantumJobError):
    """The backend unambiguously reported that the job terminated unsuccessfully."""

    prefix = "Job execution failed"


class AuthenticationError(QuantumJobError):
    """Login or token refresh exchange failed."""

    prefix = "Authentication failed"

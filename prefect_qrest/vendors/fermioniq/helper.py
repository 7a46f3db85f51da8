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
"""Server helper for the Fermioniq tensor network emulator.

Jobs are authenticated with a bearer token obtained by exchanging
an access token ID and secret at the login endpoint.
All kernel executions of a call are submitted as a single emulator job.
"""

from typing import Any

from prefect_qrest.exceptions import AuthenticationError, JobExecutionFailed, MalformedResponse, TransportError
from prefect_qrest.models import ExecutionResult, KernelExecution, SampleResult, ServerJobPayload, ServerMessage
from prefect_qrest.utils.messages import optional_field, require_field
from prefect_qrest.vendors.base import (
    CFG_KERNEL_NAMES_KEY,
    CFG_TOKEN_KEY,
    CFG_URL_KEY,
    CFG_USER_AGENT_KEY,
    USER_AGENT,
    BaseServerHelper,
)

DEFAULT_URL: str = "https://fermioniq-api-fapp-prod.azurewebsites.net"

POLLING_INTERVAL_IN_SECONDS: float = 1.0
QUEUE_BACKOFF_IN_SECONDS: float = 0.5
MAX_POLLING_INTERVAL_IN_SECONDS: float = 30.0

LOGIN_PATH: str = "/api/login"
JOBS_PATH: str = "/api/jobs"

ENV_API_KEY: str = "FERMIONIQ_API_KEY"
ENV_ACCESS_TOKEN_ID: str = "FERMIONIQ_ACCESS_TOKEN_ID"
ENV_ACCESS_TOKEN_SECRET: str = "FERMIONIQ_ACCESS_TOKEN_SECRET"

CFG_API_KEY_KEY: str = "api_key"
CFG_ACCESS_TOKEN_ID_KEY: str = "access_token_id"
CFG_ACCESS_TOKEN_SECRET_KEY: str = "access_token_secret"
CFG_USER_ID_KEY: str = "user_id"
CFG_REMOTE_CONFIG_KEY: str = "remote_config"
CFG_NOISE_MODEL_KEY: str = "noise_model"
CFG_BOND_DIM_KEY: str = "bond_dim"
CFG_PROJECT_ID_KEY: str = "project_id"

TUNING_KEYS: tuple[str, ...] = (
    CFG_REMOTE_CONFIG_KEY,
    CFG_NOISE_MODEL_KEY,
    CFG_BOND_DIM_KEY,
    CFG_PROJECT_ID_KEY,
)

# Values derived by the helper itself, carried over when a job handle is resumed.
DERIVED_KEYS: tuple[str, ...] = (
    CFG_TOKEN_KEY,
    CFG_USER_ID_KEY,
    CFG_KERNEL_NAMES_KEY,
)


class FermioniqServerHelper(BaseServerHelper):
    """Server helper for Fermioniq REST API."""

    NAME = "fermioniq"

    SECRET_KEYS = frozenset(
        {
            CFG_TOKEN_KEY,
            CFG_API_KEY_KEY,
            CFG_ACCESS_TOKEN_ID_KEY,
            CFG_ACCESS_TOKEN_SECRET_KEY,
        }
    )

    @property
    def requires_login(self) -> bool:
        return True

    def initialize(
        self,
        config: dict[str, str],
    ) -> None:
        self.logger.info("Initializing Fermioniq backend.")

        backend_config = {
            CFG_URL_KEY: self.resolve_value(config, CFG_URL_KEY, default=DEFAULT_URL),
        }
        if api_key := self.resolve_value(config, CFG_API_KEY_KEY, env_var=ENV_API_KEY):
            backend_config[CFG_API_KEY_KEY] = api_key
        backend_config[CFG_ACCESS_TOKEN_ID_KEY] = self.resolve_value(
            config,
            CFG_ACCESS_TOKEN_ID_KEY,
            env_var=ENV_ACCESS_TOKEN_ID,
            required=True,
        )
        backend_config[CFG_ACCESS_TOKEN_SECRET_KEY] = self.resolve_value(
            config,
            CFG_ACCESS_TOKEN_SECRET_KEY,
            env_var=ENV_ACCESS_TOKEN_SECRET,
            required=True,
        )
        backend_config[CFG_USER_AGENT_KEY] = USER_AGENT

        for key in TUNING_KEYS + DERIVED_KEYS:
            if (value := self.get_value_or_default(config, key)) is not None:
                backend_config[key] = value

        if CFG_BOND_DIM_KEY in backend_config:
            bond_dim = backend_config[CFG_BOND_DIM_KEY]
            if not bond_dim.isdigit() or int(bond_dim) < 1:
                raise ValueError(f"Bond dimension must be a positive integer, got '{bond_dim}'.")

        self._config = backend_config

    def get_headers(self) -> dict[str, str]:
        headers = {}
        if api_key := self._config.get(CFG_API_KEY_KEY, ""):
            headers["x-functions-key"] = api_key
        if token := self._config.get(CFG_TOKEN_KEY, ""):
            headers["Authorization"] = f"Bearer {token}"
        headers["Content-Type"] = "application/json"
        headers["User-Agent"] = self._config[CFG_USER_AGENT_KEY]
        return headers

    def create_job(
        self,
        executions: list[KernelExecution],
    ) -> ServerJobPayload:
        if not executions:
            raise ValueError("At least one kernel execution is required to create a job.")
        self.logger.debug(f"Creating Fermioniq job with {len(executions)} circuits.")

        names = self._record_kernel_names(executions)
        body: dict[str, Any] = {
            "circuit": [e.code for e in executions],
            "circuit_names": names,
        }

        circuit_config: dict[str, Any] = {}
        if remote_config := self._config.get(CFG_REMOTE_CONFIG_KEY, None):
            circuit_config["remote_config"] = remote_config
        if bond_dim := self._config.get(CFG_BOND_DIM_KEY, None):
            circuit_config["bond_dim"] = int(bond_dim)
        if circuit_config:
            body["configs"] = [dict(circuit_config) for _ in executions]

        if noise_model := self._config.get(CFG_NOISE_MODEL_KEY, None):
            body["noise_model"] = noise_model
        if user_id := self._config.get(CFG_USER_ID_KEY, None):
            body["user_id"] = user_id
        if project_id := self._config.get(CFG_PROJECT_ID_KEY, None):
            body["project_id"] = project_id

        return ServerJobPayload(JOBS_PATH, self.get_headers(), body)

    def extract_job_id(
        self,
        response: ServerMessage,
    ) -> str:
        job_id = str(require_field(response, "id", (str, int)))
        if not job_id:
            raise MalformedResponse(
                reason="Server returned an empty Job ID.",
                response=response,
            )
        return job_id

    def construct_status_path(
        self,
        response_or_id: ServerMessage | str,
    ) -> str:
        if isinstance(response_or_id, str):
            job_id = response_or_id
        else:
            job_id = self.extract_job_id(response_or_id)
        return f"{JOBS_PATH}/{job_id}"

    def construct_results_path(
        self,
        job_id: str,
    ) -> str | None:
        return f"{JOBS_PATH}/{job_id}/results"

    def job_is_done(
        self,
        status_response: ServerMessage,
    ) -> bool:
        job_id = optional_field(status_response, "id", str)
        status = require_field(status_response, "status", str, job_id=job_id)

        if error := status_response.get("error", None):
            raise JobExecutionFailed(
                reason=str(error),
                job_id=job_id,
                error_code=optional_field(status_response, "status_code", int, job_id=job_id),
            )

        match status.lower():
            case "finished":
                code = require_field(status_response, "status_code", int, job_id=job_id)
                if code == 0:
                    return True
                subject = f"Job {job_id}" if job_id else "Job"
                msg_parts = [f"{subject} finished with status code {code}"]
                if message := optional_field(status_response, "message", str, job_id=job_id):
                    msg_parts.append(message)
                raise JobExecutionFailed(
                    reason=". ".join(msg_parts),
                    job_id=job_id,
                    error_code=code,
                )
            case _:
                return False

    def process_results(
        self,
        response: ServerMessage,
        job_id: str,
    ) -> SampleResult:
        self.logger.debug(f"Processing results of Fermioniq job {job_id}.")
        outputs = require_field(response, "emulator_output", list, job_id=job_id)
        if not outputs:
            raise MalformedResponse(
                reason="Result doesn't contain any emulator output.",
                response=response,
                job_id=job_id,
            )

        names = self._recorded_kernel_names(len(outputs))
        slots: list[ExecutionResult | None] = [None] * len(outputs)
        for position, entry in enumerate(outputs):
            index = optional_field(entry, "circuit_number", int, job_id=job_id)
            if index is None:
                index = position
            if not 0 <= index < len(outputs) or slots[index] is not None:
                raise MalformedResponse(
                    reason=f"Invalid circuit number {index} in emulator output.",
                    response=response,
                    job_id=job_id,
                )
            output = require_field(entry, "output", dict, job_id=job_id)
            samples = require_field(output, "samples", dict, job_id=job_id)
            slots[index] = ExecutionResult(
                name=names[index],
                counts=_parse_samples(samples, response, job_id),
            )
        return SampleResult(executions=tuple(slots))

    def next_polling_interval(
        self,
        last_response: ServerMessage,
    ) -> float:
        # Emulation never takes less than a second.
        position = last_response.get("queue_position", None) if isinstance(last_response, dict) else None
        if isinstance(position, int) and not isinstance(position, bool) and position > 0:
            return min(
                POLLING_INTERVAL_IN_SECONDS + QUEUE_BACKOFF_IN_SECONDS * position,
                MAX_POLLING_INTERVAL_IN_SECONDS,
            )
        return POLLING_INTERVAL_IN_SECONDS

    async def _exchange_tokens(self) -> dict[str, str]:
        body = {
            "access_token_id": self._config[CFG_ACCESS_TOKEN_ID_KEY],
            "access_token_secret": self._config[CFG_ACCESS_TOKEN_SECRET_KEY],
        }
        headers = self.get_headers()
        headers.pop("Authorization", None)
        try:
            response = await self.transport.post(self.base_url, LOGIN_PATH, body, headers)
        except TransportError as ex:
            raise AuthenticationError(
                reason=f"Login request failed. {ex.reason}",
                error_code=ex.status,
                retry=ex.retry,
            ) from None

        try:
            token = require_field(response, "token", str)
            user_id = require_field(response, "user_id", (str, int))
        except MalformedResponse as ex:
            raise AuthenticationError(reason=f"Cannot parse login response. {ex.reason}") from None
        if not token:
            raise AuthenticationError(reason="Login response contains an empty token.")

        return {
            CFG_TOKEN_KEY: token,
            CFG_USER_ID_KEY: str(user_id),
        }


def _parse_samples(
    samples: dict[str, Any],
    response: ServerMessage,
    job_id: str,
) -> dict[str, int]:
    counts = {}
    for bitstring, count in samples.items():
        if not bitstring or set(bitstring) - {"0", "1"}:
            raise MalformedResponse(
                reason=f"Sample key '{bitstring}' is not a bitstring.",
                response=response,
                job_id=job_id,
            )
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise MalformedResponse(
                reason=f"Sample count of '{bitstring}' is not a non-negative integer.",
                response=response,
                job_id=job_id,
            )
        counts[bitstring] = count
    return counts

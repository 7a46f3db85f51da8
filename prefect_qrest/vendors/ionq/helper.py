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
"""Server helper for IonQ trapped-ion QPUs and simulators.

Requests are authenticated with a static API key, so there is no login exchange.
All kernel executions of a call are submitted as one multi-circuit job.
Results are probability histograms keyed by integer basis state
that are converted into bitstring counts with the number of shots.
"""

from typing import Any

from prefect_qrest.exceptions import JobExecutionFailed, MalformedResponse
from prefect_qrest.models import ExecutionResult, KernelExecution, SampleResult, ServerJobPayload, ServerMessage
from prefect_qrest.utils.messages import optional_field, require_field
from prefect_qrest.vendors.base import (
    CFG_KERNEL_NAMES_KEY,
    CFG_URL_KEY,
    CFG_USER_AGENT_KEY,
    USER_AGENT,
    BaseServerHelper,
)

DEFAULT_URL: str = "https://api.ionq.co/v0.3"
DEFAULT_TARGET: str = "simulator"
DEFAULT_SHOTS: str = "1000"

POLLING_INTERVAL_IN_SECONDS: float = 2.0

JOBS_PATH: str = "/jobs"

ENV_API_KEY: str = "IONQ_API_KEY"

CFG_API_KEY_KEY: str = "api_key"
CFG_TARGET_KEY: str = "target"
CFG_SHOTS_KEY: str = "shots"
CFG_NOISE_MODEL_KEY: str = "noise_model"


class IonQServerHelper(BaseServerHelper):
    """Server helper for IonQ REST API v0.3."""

    NAME = "ionq"

    SECRET_KEYS = frozenset({CFG_API_KEY_KEY})

    def initialize(
        self,
        config: dict[str, str],
    ) -> None:
        self.logger.info("Initializing IonQ backend.")

        backend_config = {
            CFG_URL_KEY: self.resolve_value(config, CFG_URL_KEY, default=DEFAULT_URL),
            CFG_API_KEY_KEY: self.resolve_value(config, CFG_API_KEY_KEY, env_var=ENV_API_KEY, required=True),
            CFG_TARGET_KEY: self.resolve_value(config, CFG_TARGET_KEY, default=DEFAULT_TARGET),
            CFG_SHOTS_KEY: self.resolve_value(config, CFG_SHOTS_KEY, default=DEFAULT_SHOTS),
            CFG_USER_AGENT_KEY: USER_AGENT,
        }
        for key in (CFG_NOISE_MODEL_KEY, CFG_KERNEL_NAMES_KEY):
            if (value := self.get_value_or_default(config, key)) is not None:
                backend_config[key] = value

        shots = backend_config[CFG_SHOTS_KEY]
        if not shots.isdigit() or int(shots) < 1:
            raise ValueError(f"Number of shots must be a positive integer, got '{shots}'.")

        self._config = backend_config

    def get_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"apiKey {self._config[CFG_API_KEY_KEY]}",
            "Content-Type": "application/json",
            "User-Agent": self._config[CFG_USER_AGENT_KEY],
        }

    def create_job(
        self,
        executions: list[KernelExecution],
    ) -> ServerJobPayload:
        if not executions:
            raise ValueError("At least one kernel execution is required to create a job.")

        names = self._record_kernel_names(executions)
        body: dict[str, Any] = {
            "target": self._config[CFG_TARGET_KEY],
            "shots": int(self._config[CFG_SHOTS_KEY]),
            "name": names[0] if len(names) == 1 else f"{names[0]} (+{len(names) - 1})",
            "input": {
                "format": "openqasm",
                "circuits": [{"name": e.name, "data": e.code} for e in executions],
            },
        }
        if noise_model := self._config.get(CFG_NOISE_MODEL_KEY, None):
            body["noise"] = {"model": noise_model}

        return ServerJobPayload(JOBS_PATH, self.get_headers(), body)

    def extract_job_id(
        self,
        response: ServerMessage,
    ) -> str:
        job_id = require_field(response, "id", str)
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

    def job_is_done(
        self,
        status_response: ServerMessage,
    ) -> bool:
        job_id = optional_field(status_response, "id", str)
        status = require_field(status_response, "status", str, job_id=job_id)

        match status.lower():
            case "completed":
                return True
            case "failed":
                failure = optional_field(status_response, "failure", dict, job_id=job_id) or {}
                raise JobExecutionFailed(
                    reason=str(failure.get("error", None) or f"Job {job_id} failed."),
                    job_id=job_id,
                    error_code=failure.get("code", None),
                )
            case "canceled" | "cancelled":
                raise JobExecutionFailed(
                    reason=f"Job {job_id} was canceled.",
                    job_id=job_id,
                )
            case _:
                return False

    def process_results(
        self,
        response: ServerMessage,
        job_id: str,
    ) -> SampleResult:
        num_qubits = require_field(response, "qubits", int, job_id=job_id)
        shots = optional_field(response, "shots", int, job_id=job_id)
        if shots is None:
            shots = int(self._config[CFG_SHOTS_KEY])
        data = require_field(response, "data", dict, job_id=job_id)

        if (histograms := optional_field(data, "histograms", dict, job_id=job_id)) is not None:
            if CFG_KERNEL_NAMES_KEY in self._config:
                names = self._recorded_kernel_names(len(histograms))
            else:
                names = list(histograms)
            executions = []
            for name in names:
                if name not in histograms:
                    raise MalformedResponse(
                        reason=f"Histogram of circuit '{name}' is missing.",
                        response=response,
                        job_id=job_id,
                    )
                histogram = require_field(histograms, name, dict, job_id=job_id)
                executions.append(
                    ExecutionResult(
                        name=name,
                        counts=_to_counts(histogram, num_qubits, shots, response, job_id),
                    )
                )
            return SampleResult(executions=tuple(executions))

        histogram = require_field(data, "histogram", dict, job_id=job_id)
        (name,) = self._recorded_kernel_names(1)
        return SampleResult.from_counts(
            counts=_to_counts(histogram, num_qubits, shots, response, job_id),
            name=name,
        )

    def next_polling_interval(
        self,
        last_response: ServerMessage,
    ) -> float:
        return POLLING_INTERVAL_IN_SECONDS


def _to_counts(
    histogram: dict[str, Any],
    num_qubits: int,
    shots: int,
    response: ServerMessage,
    job_id: str,
) -> dict[str, int]:
    counts = {}
    for state, probability in histogram.items():
        if not state.isdigit():
            raise MalformedResponse(
                reason=f"Histogram key '{state}' is not an integer basis state.",
                response=response,
                job_id=job_id,
            )
        if isinstance(probability, bool) or not isinstance(probability, int | float) or probability < 0:
            raise MalformedResponse(
                reason=f"Probability of state {state} is not a non-negative number.",
                response=response,
                job_id=job_id,
            )
        if count := round(probability * shots):
            counts[format(int(state), f"0{num_qubits}b")] = count
    return counts

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
"""Test utilities."""

import asyncio
from typing import Any

from prefect_qrest.exceptions import JobExecutionFailed
from prefect_qrest.models import KernelExecution, SampleResult, ServerJobPayload, ServerMessage
from prefect_qrest.utils.messages import optional_field, require_field
from prefect_qrest.vendors.base import CFG_TOKEN_KEY, CFG_URL_KEY, BaseServerHelper

FAKE_BACKEND = "X"
FAKE_URL = "https://fake-backend.example.com"


class StubTransport:
    """Transport client replaying scripted responses.

    A queued exception instance is raised instead of returned.
    Every request is recorded in `calls` as (method, path, body, headers)
    and its base URL in `base_urls`.
    """

    def __init__(
        self,
        post: list[Any] | None = None,
        get: list[Any] | None = None,
        delay: float = 0.0,
    ):
        self.post_responses = list(post or [])
        self.get_responses = list(get or [])
        self.delay = delay
        self.calls: list[tuple[str, str, Any, dict[str, str]]] = []
        self.base_urls: list[str] = []

    async def post(
        self,
        base_url: str,
        path: str,
        json_body: Any,
        headers: dict[str, str],
    ) -> ServerMessage:
        self.calls.append(("POST", path, json_body, dict(headers)))
        self.base_urls.append(base_url)
        return await self._next(self.post_responses)

    async def get(
        self,
        base_url: str,
        path: str,
        headers: dict[str, str],
    ) -> ServerMessage:
        self.calls.append(("GET", path, None, dict(headers)))
        self.base_urls.append(base_url)
        return await self._next(self.get_responses)

    def count(self, method: str, path: str | None = None) -> int:
        return sum(1 for c in self.calls if c[0] == method and (path is None or c[1] == path))

    async def _next(self, queue: list[Any]) -> ServerMessage:
        if self.delay:
            await asyncio.sleep(self.delay)
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class FakeServerHelper(BaseServerHelper):
    """Server helper of an imaginary backend X.

    Login is enabled with the `login` configuration key,
    which exchanges `password` for a token at /login.
    """

    NAME = FAKE_BACKEND

    SECRET_KEYS = frozenset({CFG_TOKEN_KEY, "password"})

    @property
    def requires_login(self) -> bool:
        return self._config.get("login", "") == "true"

    def initialize(self, config: dict[str, str]) -> None:
        backend_config = {
            CFG_URL_KEY: self.resolve_value(config, CFG_URL_KEY, default=FAKE_URL),
        }
        for key in ("login", "password", CFG_TOKEN_KEY, "kernel_names"):
            if (value := self.get_value_or_default(config, key)) is not None:
                backend_config[key] = value
        if backend_config.get("login", "") == "true":
            backend_config["password"] = self.resolve_value(config, "password", required=True)
        self._config = backend_config

    def get_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if token := self._config.get(CFG_TOKEN_KEY, ""):
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def create_job(self, executions: list[KernelExecution]) -> ServerJobPayload:
        self._record_kernel_names(executions)
        return ServerJobPayload(
            "/jobs",
            self.get_headers(),
            {"circuits": [e.code for e in executions]},
        )

    def extract_job_id(self, response: ServerMessage) -> str:
        return require_field(response, "job_id", str)

    def construct_status_path(self, response_or_id: ServerMessage | str) -> str:
        if isinstance(response_or_id, str):
            return f"/jobs/{response_or_id}"
        return f"/jobs/{self.extract_job_id(response_or_id)}"

    def job_is_done(self, status_response: ServerMessage) -> bool:
        status = require_field(status_response, "status", str)
        if status == "error":
            raise JobExecutionFailed(reason=status_response.get("message", "unknown error"))
        return status == "done"

    def process_results(self, response: ServerMessage, job_id: str) -> SampleResult:
        (name,) = self._recorded_kernel_names(1)
        return SampleResult.from_counts(
            counts=require_field(response, "counts", dict, job_id=job_id),
            name=name,
        )

    def next_polling_interval(self, last_response: ServerMessage) -> float:
        interval = optional_field(last_response, "retry_after", (int, float))
        return 0.01 if interval is None else interval

    async def _exchange_tokens(self) -> dict[str, str]:
        response = await self.transport.post(
            self.base_url,
            "/login",
            {"password": self._config["password"]},
            {"Content-Type": "application/json"},
        )
        return {CFG_TOKEN_KEY: require_field(response, "token", str)}


IONQ_SUBMIT_RESPONSE = {"id": "ionq-job-1", "status": "ready"}

IONQ_COMPLETED_RESPONSE = {
    "id": "ionq-job-1",
    "status": "completed",
    "qubits": 2,
    "data": {"histogram": {"0": 0.5, "3": 0.5}},
}

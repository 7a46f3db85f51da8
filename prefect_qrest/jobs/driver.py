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
"""Job lifecycle driver.

The driver moves a job through the states
`CREATED -> SUBMITTED -> POLLING -> DONE | FAILED`
by combining a server helper with the transport client.
The only suspension points are the wait between status checks and
the transport calls themselves.
"""

import asyncio
from collections.abc import Sequence
from datetime import datetime, timezone
from http import HTTPStatus

from cachetools import LRUCache

from prefect_qrest.exceptions import JobExecutionFailed, MalformedResponse, TransportError
from prefect_qrest.jobs.job import QuantumJobRun
from prefect_qrest.models import (
    AsyncTransportInterface,
    KernelExecution,
    KernelExecutionLike,
    SampleResult,
    ServerHelperInterface,
    ServerMessage,
)
from prefect_qrest.registry import BackendRegistry, get_default_registry
from prefect_qrest.transport import AiohttpTransport
from prefect_qrest.utils.logging import LoggingMixin

MIN_POLL_INTERVAL: float = 0.1
MAX_CACHED_JOBS: int = 1024


class JobLifecycleDriver(LoggingMixin):
    """
    Drive jobs from submission to a terminal state.

    Multiple jobs can be polled concurrently from separate asyncio tasks.
    Status checks of the same job are always sequential.
    There is no iteration cap on polling. A deadline is a caller concern,
    e.g. the Prefect task timeout of the job runner.
    """

    def __init__(
        self,
        registry: BackendRegistry | None = None,
        transport: AsyncTransportInterface | None = None,
        max_cached_jobs: int = MAX_CACHED_JOBS,
    ):
        """Create new driver.

        Args:
            registry: Backend registry to resolve server helpers.
                The process-wide registry is used when omitted.
            transport: Transport client for submission and status requests.
            max_cached_jobs: Number of jobs whose helper instance is kept for reuse.
        """
        self.registry = registry or get_default_registry()
        self.transport = transport or AiohttpTransport()
        self._helpers: LRUCache = LRUCache(maxsize=max_cached_jobs)
        self._locks: LRUCache = LRUCache(maxsize=max_cached_jobs)

    def create_helper(
        self,
        backend_name: str,
        config: dict[str, str],
    ) -> ServerHelperInterface:
        """Instantiate and initialize a server helper.

        Raises:
            UnknownBackend: When the backend is not registered.
            MissingConfiguration: When a required key cannot be resolved.
        """
        helper = self.registry.create(backend_name)
        helper.initialize(dict(config))
        return helper

    async def submit(
        self,
        backend_name: str,
        config: dict[str, str],
        executions: Sequence[KernelExecutionLike],
    ) -> QuantumJobRun:
        """Asynchronously submit kernel executions as a single job.

        The job is never assumed to be complete at submission.
        The first status check happens after the backend polling interval.

        Args:
            backend_name: Registry name of the backend.
            config: Backend configuration.
            executions: Kernels to run.

        Raises:
            TransportError: When submission fails. No retry happens at this layer.
            MalformedResponse: When the submission response has no Job ID.

        Returns:
            Job handle in the POLLING state.
        """
        executions = [KernelExecution.coerce(e) for e in executions]
        helper = self.create_helper(backend_name, config)
        if helper.requires_login:
            await helper.refresh_tokens(force_refresh=True)

        payload = helper.create_job(executions)
        self.logger.info(f"Submitting {len(executions)} kernel executions to {backend_name}.")
        response = await self.transport.post(helper.base_url, payload.path, payload.body, payload.headers)

        job_id = helper.extract_job_id(response)
        status_path = helper.construct_status_path(response)
        self.logger.info(f"Job started with job ID {job_id}.")

        self._helpers[(backend_name, job_id)] = helper
        return QuantumJobRun(
            backend_name=backend_name,
            job_id=job_id,
            status_path=status_path,
            backend_config=helper.get_persistable_config(),
            state="POLLING",
            poll_interval=self._polling_interval(helper, response),
            submitted_at=datetime.now(timezone.utc),
        )

    async def poll(
        self,
        job_run: QuantumJobRun,
        base_config: dict[str, str] | None = None,
    ) -> bool:
        """Asynchronously issue one status check.

        This is the entry point of non-blocking callers,
        which schedule the next call after `job_run.poll_interval` by themselves.

        !!! NOTE
            Transport errors propagate but leave the job in the POLLING state,
            so the same handle can be polled again later.

        Args:
            job_run: Job handle. It may come from another process.
            base_config: Configuration the persisted subset is merged onto.

        Raises:
            JobExecutionFailed: When the backend reports a failed job.
            MalformedResponse: When the backend response cannot be interpreted.
            TransportError: When the backend cannot be reached.

        Returns:
            True when the job reached a terminal state.
        """
        async with self._job_lock(job_run):
            if job_run.done():
                return True
            helper = await self._helper_for(job_run, base_config)

            try:
                response = await self._get(helper, job_run.status_path)
                job_run.num_polls += 1
                job_run.poll_interval = self._polling_interval(helper, response)
                if not helper.job_is_done(response):
                    self.logger.debug(f"Job {job_run.job_id} is not done yet.")
                    return False
                if (results_path := helper.construct_results_path(job_run.job_id)) is not None:
                    response = await self._get(helper, results_path)
                result = helper.process_results(response, job_run.job_id)
            except (JobExecutionFailed, MalformedResponse) as ex:
                if ex.job_id is None:
                    ex.job_id = job_run.job_id
                job_run.mark_failed(ex)
                self._helpers.pop(_job_key(job_run), None)
                self.logger.error(f"Job {job_run.job_id} failed. {ex.message}")
                raise

            job_run.mark_done(result)
            self._helpers.pop(_job_key(job_run), None)
            self.logger.info(f"Job {job_run.job_id} completed after {job_run.num_polls} status checks.")
            return True

    async def wait(
        self,
        job_run: QuantumJobRun,
        base_config: dict[str, str] | None = None,
    ) -> SampleResult:
        """Asynchronously poll the job until a terminal state.

        A resumed handle continues at the next status check.

        Raises:
            QuantumJobError: When the job fails or the backend cannot be reached.

        Returns:
            Sample result of the job.
        """
        self.logger.info(f"Watching job ID {job_run.job_id}.")
        while not job_run.done():
            await asyncio.sleep(job_run.poll_interval)
            await self.poll(job_run, base_config=base_config)
        if job_run.failure is not None:
            raise job_run.failure.to_exception()
        return job_run.result

    async def _helper_for(
        self,
        job_run: QuantumJobRun,
        base_config: dict[str, str] | None,
    ) -> ServerHelperInterface:
        helper = self._helpers.get(_job_key(job_run), None)
        if helper is None:
            self.logger.debug(f"Restoring {job_run.backend_name} helper of job {job_run.job_id}.")
            helper = self.create_helper(
                job_run.backend_name,
                {**(base_config or {}), **job_run.backend_config},
            )
            if helper.requires_login:
                await helper.refresh_tokens(force_refresh=True)
            self._helpers[_job_key(job_run)] = helper
        return helper

    async def _get(
        self,
        helper: ServerHelperInterface,
        path: str,
    ) -> ServerMessage:
        try:
            return await self.transport.get(helper.base_url, path, helper.get_headers())
        except TransportError as ex:
            if ex.status != HTTPStatus.UNAUTHORIZED or not helper.requires_login:
                raise
        self.logger.info("Token was rejected while polling. Refreshing token.")
        await helper.refresh_tokens(force_refresh=True)
        return await self.transport.get(helper.base_url, path, helper.get_headers())

    def _polling_interval(
        self,
        helper: ServerHelperInterface,
        response: ServerMessage,
    ) -> float:
        interval = helper.next_polling_interval(response)
        if interval <= 0:
            self.logger.warning(f"{helper.name()} returned non-positive polling interval {interval}.")
            return MIN_POLL_INTERVAL
        return interval

    def _job_lock(
        self,
        job_run: QuantumJobRun,
    ) -> asyncio.Lock:
        # asyncio.Lock cannot be shared across event loops.
        loop = asyncio.get_running_loop()
        key = _job_key(job_run)
        entry = self._locks.get(key, None)
        if entry is None or entry[0] is not loop:
            entry = (loop, asyncio.Lock())
            self._locks[key] = entry
        return entry[1]


def _job_key(job_run: QuantumJobRun) -> tuple[str, str]:
    # Job IDs are only unique within a backend.
    return job_run.backend_name, job_run.job_id

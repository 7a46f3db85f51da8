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
This module provides an abstraction layer for managing the execution of quantum jobs.
Execution is managed by a Prefect task behind the scenes, enhancing system error resilience.

The runtime supports both synchronous and asynchronous execution of jobs.
Asynchronous execution is particularly efficient for I/O-bound tasks,
typical in client-server remote computing scenarios.

Users must supply Prefect credential blocks for the specific vendor to run on the target backend.
"""

import asyncio
from functools import partial

from prefect._internal.compatibility.async_dispatch import async_dispatch
from prefect.blocks.core import Block
from prefect.cache_policies import NO_CACHE, CacheKeyFnPolicy
from prefect.tasks import Task
from pydantic import Field

from prefect_qrest.exceptions import QuantumJobError
from prefect_qrest.jobs import JobLifecycleDriver, QuantumJob, QuantumJobRun
from prefect_qrest.jobs.runner import retry_on_failure, run_quantum_job
from prefect_qrest.models import KernelExecution, KernelExecutionLike, SampleResult
from prefect_qrest.utils.hasher import execution_hasher
from prefect_qrest.vendors import QuantumCredentialsT

# A prefix of cached result file name when the cache mode is enabled.
CACHE_PREFIX = "quantum-job-"


class QuantumRuntime(Block):
    """
    Prefect Block used to execute quantum jobs on remote REST backends.
    Quantum Runtime is a vendor agnostic implementation of job execution.

    Attributes:
        credentials:
            Credentials to access the quantum backend of a target vendor.
        enable_job_analytics:
            Enable quantum job analytics.
            When analytics is enabled, each job execution will create
            a table artifact 'job-summary' that reports the job identity,
            execution timestamps, and the number of samples of each kernel.
        max_retry:
            Maximum number of job execution retry on failure.
            Job execution raises an error after all executions fail or
            the error is not retryable.
        retry_delay:
            Standby time in seconds before creating new execution task on failure.
            This setting is applied only if the maximum retry is nonzero.
        timeout:
            Job execution timeout in seconds.
            Execution task will raise TaskRunTimeoutError after timeout.
            If the maximum number of reruns has not been reached,
            the error is also suppressed and new execution task is created.
        execution_cache:
            Cache job execution result in a local file system.
            A cache key is computed from the kernel executions,
            the backend configuration except for secrets, and the backend name.

    Example:
        Load stored Quantum Runtime and sample a Bell circuit.

        ```python
        from prefect_qrest.runtime import QuantumRuntime
        from qiskit.circuit import QuantumCircuit

        runtime = QuantumRuntime.load("BLOCK_NAME")

        bell = QuantumCircuit(2, name="bell")
        bell.h(0)
        bell.cx(0, 1)
        bell.measure_all()

        result = runtime.sample([bell])
        print(result.get_counts("bell"))
        ```
    """

    _logo_url = "https://avatars.githubusercontent.com/u/30696987?s=200&v=4"
    _block_type_name = "Quantum Runtime"
    _block_type_slug = "quantum-runtime"

    credentials: QuantumCredentialsT = Field(
        description="Credentials to access the quantum backend of a target vendor.",
        title="Quantum Runtime Credentials",
    )

    enable_job_analytics: bool = Field(
        default=True,
        description=(
            "Enable quantum job analytics. "
            "When analytics is enabled, each job execution will create a table artifact 'job-summary' "
            "that reports the job identity, execution timestamps, and the number of samples of each kernel."
        ),
        title="Job Analytics",
    )

    max_retry: int = Field(
        default=0,
        description=(
            "Maximum number of job execution retry on failure. "
            "Job execution raises an error after all executions fail or "
            "the error is not retryable."
        ),
        title="Max Job Retry",
        ge=0,
    )

    retry_delay: int = Field(
        default=300,
        description=(
            "Standby time in seconds before creating new execution task on failure. "
            "This setting is applied only if the maximum retry is nonzero."
        ),
        title="Retry Delay",
        ge=0,
    )

    timeout: int | None = Field(
        default=None,
        description=(
            "Job execution timeout in seconds. "
            "Execution task will raise TaskRunTimeoutError after timeout. "
            "If the maximum number of reruns has not been reached, "
            "the error is also suppressed and new execution task is created."
        ),
        title="Execution Timeout",
        ge=0,
    )

    execution_cache: bool = Field(
        default=False,
        description=(
            "Cache job execution result in a local file system. "
            "A cache key is computed from the kernel executions, "
            "the backend configuration except for secrets, and the backend name."
        ),
        title="Execution Cache",
    )

    async def async_sample(
        self,
        executions: list[KernelExecutionLike],
        tags: list[str] | None = None,
    ) -> SampleResult:
        """Asynchronously run kernels and wait for the sample result.

        Args:
            executions: Compiled kernels or Qiskit circuits to run as one job.
            tags: Arbitrary labels to add to the task tags of execution.

        Returns:
            Sample result of the job.
        """
        opted_run_quantum_job = self.build_runner_task(tags=tags)

        return await opted_run_quantum_job(
            executions=list(map(KernelExecution.coerce, executions)),
        )

    @async_dispatch(async_sample)
    def sample(
        self,
        executions: list[KernelExecutionLike],
        tags: list[str] | None = None,
    ) -> SampleResult:
        """Run kernels and wait for the sample result.

        Args:
            executions: Compiled kernels or Qiskit circuits to run as one job.
            tags: Arbitrary labels to add to the task tags of execution.

        Returns:
            Sample result of the job.
        """
        opted_run_quantum_job = self.build_runner_task(tags=tags)

        coro = opted_run_quantum_job(
            executions=list(map(KernelExecution.coerce, executions)),
        )
        return asyncio.run(coro)

    async def async_submit(
        self,
        executions: list[KernelExecutionLike],
    ) -> QuantumJobRun:
        """Asynchronously submit kernels and return without waiting.

        The returned handle is serializable and can be resumed later
        with `resume`, possibly in another process.

        Args:
            executions: Compiled kernels or Qiskit circuits to run as one job.

        Returns:
            Pending job handle.
        """
        job = QuantumJob(
            credentials=self.credentials,
            executions=executions,
        )
        return await job.trigger()

    @async_dispatch(async_submit)
    def submit(
        self,
        executions: list[KernelExecutionLike],
    ) -> QuantumJobRun:
        """Submit kernels and return without waiting.

        Args:
            executions: Compiled kernels or Qiskit circuits to run as one job.

        Returns:
            Pending job handle.
        """
        return asyncio.run(self.async_submit(executions))

    async def async_resume(
        self,
        job_run: QuantumJobRun,
    ) -> SampleResult:
        """Asynchronously wait for a previously submitted job.

        Secrets of the backend configuration are taken from the credentials of this runtime.

        Args:
            job_run: Job handle returned by `submit` or loaded from a file.

        Raises:
            QuantumJobError: When the job fails or the handle belongs to another backend.

        Returns:
            Sample result of the job.
        """
        self._check_backend(job_run)
        return await job_run.fetch_result(
            driver=JobLifecycleDriver(),
            base_config=self.credentials.get_backend_config(),
        )

    @async_dispatch(async_resume)
    def resume(
        self,
        job_run: QuantumJobRun,
    ) -> SampleResult:
        """Wait for a previously submitted job.

        Args:
            job_run: Job handle returned by `submit` or loaded from a file.

        Returns:
            Sample result of the job.
        """
        return asyncio.run(self.async_resume(job_run))

    def build_runner_task(
        self,
        **kwargs,
    ) -> Task:
        """Build Prefect Task object that runs quantum job.

        Args:
            kwargs: Keyword arguments to instantiate Prefect Task.

        Returns:
            A configured prefect task.
        """
        configured_runner = partial(
            run_quantum_job,
            credentials=self.credentials,
            enable_analytics=self.enable_job_analytics,
        )

        if self.execution_cache:
            kwargs.update(
                {
                    "cache_policy": CacheKeyFnPolicy(cache_key_fn=_execution_cache),
                    "persist_result": True,
                    "result_serializer": "compressed/pickle",
                }
            )
        else:
            kwargs.update(
                {
                    "cache_policy": NO_CACHE,
                    "persist_result": False,
                }
            )

        return Task(
            fn=configured_runner,
            name="run_quantum_job",
            retries=self.max_retry,
            retry_delay_seconds=self.retry_delay,
            timeout_seconds=self.timeout,
            retry_condition_fn=retry_on_failure,
            **kwargs,
        )

    def _check_backend(
        self,
        job_run: QuantumJobRun,
    ) -> None:
        if job_run.backend_name != self.credentials.backend_name:
            raise QuantumJobError(
                reason=(
                    f"Job {job_run.job_id} runs on {job_run.backend_name} but this runtime "
                    f"is configured for {self.credentials.backend_name}."
                ),
                job_id=job_run.job_id,
            )


def _execution_cache(_, parameters) -> str:
    credentials = parameters["credentials"]
    helper = credentials.get_client()
    key = execution_hasher(
        executions=parameters["executions"],
        backend_config=helper.get_persistable_config(),
        backend_name=credentials.backend_name,
    )
    return CACHE_PREFIX + key

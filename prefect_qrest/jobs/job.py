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
"""Prefect integration for quantum jobs on REST backends."""

from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from prefect.blocks.abstract import CredentialsBlock, JobBlock, JobRun
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing_extensions import Self

from prefect_qrest.exceptions import QuantumJobError
from prefect_qrest.models import JOB_STATE, JobFailure, KernelExecution, SampleResult

if TYPE_CHECKING:
    from prefect_qrest.jobs.driver import JobLifecycleDriver


class QuantumJobRun(BaseModel, JobRun):
    """
    A handle of a submitted quantum job.

    The handle is serializable at any point of its lifecycle.
    A pending handle can be written to disk, loaded in another process,
    and polled again without resubmitting the job.
    Secrets are never written. They are resolved again from the environment
    or from the configuration given when polling resumes.

    !!! TIP
        You can save the handle and come back for the result later.

        ```python
        from prefect_qrest.jobs import QuantumJob, QuantumJobRun
        from prefect_qrest.vendors.fermioniq import FermioniqCredentials

        job = QuantumJob(
            credentials=FermioniqCredentials.load("my-fermioniq"),
            executions=[("ghz", ghz_qasm)],
        )
        job_run = await job.trigger()
        job_run.to_file("ghz-job.json")

        # ... in another process
        job_run = QuantumJobRun.from_file("ghz-job.json")
        result = await job_run.fetch_result()
        ```

    Attributes:
        backend_name:
            Registry name of the backend running the job.
        job_id:
            The unique identifier of the job at the backend.
        status_path:
            Path of the status request relative to the backend URL.
        backend_config:
            Backend configuration subset to rebuild request paths and headers.
        state:
            Lifecycle state of the job.
        poll_interval:
            Seconds to wait before the next status request, as reported by the backend.
        num_polls:
            Number of status requests issued so far.
        submitted_at:
            Time when the job was submitted.
        completed_at:
            Time when the job reached a terminal state.
        result:
            Sample result of a successful job.
        failure:
            Error record of a failed job.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    backend_name: str = Field(
        description="Registry name of the backend running the job.",
    )

    job_id: str = Field(
        description="The unique identifier of the job at the backend.",
    )

    status_path: str = Field(
        description="Path of the status request relative to the backend URL.",
    )

    backend_config: dict[str, str] = Field(
        default_factory=dict,
        description="Backend configuration subset to rebuild request paths and headers.",
    )

    state: JOB_STATE = Field(
        default="POLLING",
        description="Lifecycle state of the job.",
    )

    poll_interval: float = Field(
        default=1.0,
        description="Seconds to wait before the next status request, as reported by the backend.",
        gt=0,
    )

    num_polls: int = Field(
        default=0,
        description="Number of status requests issued so far.",
        ge=0,
    )

    submitted_at: datetime | None = Field(
        default=None,
        description="Time when the job was submitted.",
    )

    completed_at: datetime | None = Field(
        default=None,
        description="Time when the job reached a terminal state.",
    )

    result: SampleResult | None = Field(
        default=None,
        description="Sample result of a successful job.",
    )

    failure: JobFailure | None = Field(
        default=None,
        description="Error record of a failed job.",
    )

    def done(self) -> bool:
        """Return True when the job reached a terminal state."""
        return self.state in ("DONE", "FAILED")

    def pending(self) -> bool:
        return not self.done()

    def mark_done(
        self,
        result: SampleResult,
    ) -> bool:
        """Store the result unless the job is already terminal.

        Returns:
            True when this call resolved the job.
        """
        if self.done():
            return False
        self.result = result
        self.completed_at = datetime.now(timezone.utc)
        self.state = "DONE"
        return True

    def mark_failed(
        self,
        error: QuantumJobError,
    ) -> bool:
        """Store the failure unless the job is already terminal.

        Returns:
            True when this call resolved the job.
        """
        if self.done():
            return False
        self.failure = JobFailure.from_exception(error)
        self.completed_at = datetime.now(timezone.utc)
        self.state = "FAILED"
        return True

    async def wait_for_completion(
        self,
        driver: "JobLifecycleDriver | None" = None,
        base_config: dict[str, str] | None = None,
    ) -> None:
        """Asynchronously wait for the job to reach a terminal state.

        Args:
            driver: Lifecycle driver to poll with. A driver with the default
                registry and transport is created when omitted.
            base_config: Backend configuration the persisted subset is merged onto,
                typically carrying secrets of a resumed job.

        Raises:
            QuantumJobError: When the job fails or the backend cannot be reached.
        """
        if self.done():
            return
        if driver is None:
            from prefect_qrest.jobs.driver import JobLifecycleDriver

            driver = JobLifecycleDriver()
        await driver.wait(self, base_config=base_config)
        self.logger.info("Job succeeded.")

    async def fetch_result(
        self,
        driver: "JobLifecycleDriver | None" = None,
        base_config: dict[str, str] | None = None,
    ) -> SampleResult:
        """Fetch sample result, waiting for completion when the job is pending.

        Raises:
            QuantumJobError: The stored failure when the job failed.
        """
        if self.pending():
            await self.wait_for_completion(driver=driver, base_config=base_config)
        if self.failure is not None:
            raise self.failure.to_exception()
        return self.result

    def serialize(self) -> bytes:
        """Serialize the handle into a JSON byte string."""
        return self.model_dump_json().encode("utf-8")

    @classmethod
    def deserialize(
        cls,
        data: bytes | str,
    ) -> Self:
        """Restore the handle from `serialize` output."""
        return cls.model_validate_json(data)

    def to_file(
        self,
        path: str | Path,
    ) -> None:
        Path(path).write_bytes(self.serialize())

    @classmethod
    def from_file(
        cls,
        path: str | Path,
    ) -> Self:
        return cls.deserialize(Path(path).read_bytes())


class QuantumJob(JobBlock):
    """
    Prefect-style definition of a single quantum job.

    Although the job handling logic is backend-agnostic,
    users provide vendor-specific credentials carrying the backend
    configuration to communicate with target hardware.

    Attributes:
        credentials:
            A vendor specific credentials that provides the backend configuration.
        executions:
            Compiled kernels submitted together as one job.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    credentials: CredentialsBlock = Field(
        description="A vendor specific credentials that provides the backend configuration.",
        title="Quantum Backend Credentials",
    )

    executions: list[KernelExecution] = Field(
        description="Compiled kernels submitted together as one job.",
        min_length=1,
    )

    @field_validator("executions", mode="before")  # type: ignore
    @classmethod
    def coerce_executions(cls, value: list) -> list:
        # Serialized blocks load executions back as dictionaries.
        return [v if isinstance(v, dict) else KernelExecution.coerce(v) for v in value]

    async def trigger(
        self,
        driver: "JobLifecycleDriver | None" = None,
    ) -> QuantumJobRun:
        """
        Triggers a job run in an external service and returns a QuantumJobRun object
        to track the execution of the run.
        """
        if driver is None:
            from prefect_qrest.jobs.driver import JobLifecycleDriver

            driver = JobLifecycleDriver()

        self.logger.info(f"Initializing quantum job using {self.credentials.get_block_type_name()}.")

        return await driver.submit(
            backend_name=self.credentials.backend_name,
            config=self.credentials.get_backend_config(),
            executions=self.executions,
        )

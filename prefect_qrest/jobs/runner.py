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
"""Core quantum job runner."""

from prefect import task
from prefect.artifacts import create_table_artifact
from prefect.blocks.abstract import CredentialsBlock
from prefect.context import TaskRunContext
from prefect.logging import get_run_logger
from prefect.task_engine import TaskRunTimeoutError

from prefect_qrest.exceptions import MalformedResponse, QuantumJobError
from prefect_qrest.jobs.driver import JobLifecycleDriver
from prefect_qrest.jobs.job import QuantumJob, QuantumJobRun
from prefect_qrest.models import KernelExecution, SampleResult


async def retry_on_failure(_task, _task_run, state):
    try:
        await state.result()
    except QuantumJobError as ex:
        # Rerun job only when the failure is temporary reason
        return ex.retry
    except TaskRunTimeoutError:
        # Prefect task timeout, maybe network/queue issue
        return True
    except Exception:
        return False


@task(
    name="run_quantum_job",
    retry_condition_fn=retry_on_failure,
)
async def run_quantum_job(
    *,
    executions: list[KernelExecution],
    credentials: CredentialsBlock,
    enable_analytics: bool = True,
) -> SampleResult:
    """
    This function implements a Prefect task to manage the execution of
    compiled quantum kernels on a REST backend,
    providing built-in execution failure protection.

    All kernel executions are submitted as a single job.
    The job is polled until the backend reports a terminal state,
    and the histograms are formatted into a SampleResult instance.

    If the job is successful and the `enable_analytics` flag is set,
    the task will create a job-summary table artifact and save it on the Prefect server.

    Args:
        executions: Compiled kernels to run.
        credentials: Backend credentials.
        enable_analytics: Set True to generate table artifact of job summary.

    Returns:
        Sample result of the job.
    """
    context = TaskRunContext.get()

    # The helper created at submission is reused by polling.
    driver = JobLifecycleDriver()
    job = QuantumJob(
        credentials=credentials,
        executions=executions,
    )
    job_run = await job.trigger(driver=driver)
    result = await job_run.fetch_result(driver=driver)
    if len(result.executions) != len(job.executions):
        raise MalformedResponse(
            reason=f"Backend returned {len(result.executions)} results for {len(job.executions)} kernel executions.",
            job_id=job_run.job_id,
        )

    if enable_analytics:
        logger = get_run_logger()
        logger.info("Collecting execution summary from Job.")

        job_summary_dict = _make_analytics(
            job_run=job_run,
            tags=sorted(context.task.tags),
            executions=job.executions,
            result=result,
        )

        _ = await create_table_artifact(
            table=[list(job_summary_dict.keys()), list(job_summary_dict.values())],
            key="job-summary",
            description=f"Summary of quantum job run {context.task_run.id} / {context.task_run.name}",
        )

    return result


def _make_analytics(
    job_run: QuantumJobRun,
    tags: list[str],
    executions: list[KernelExecution],
    result: SampleResult,
) -> dict:
    submitted_dt = job_run.submitted_at
    completed_dt = job_run.completed_at
    if submitted_dt is not None and completed_dt is not None:
        span_job = (completed_dt - submitted_dt).total_seconds()
    else:
        span_job = None

    # Overall job information
    job_summary_dict = {
        "backend": job_run.backend_name,
        "job_id": job_run.job_id,
        "num_executions": len(executions),
        "tags": tags,
        "timestamp.submitted": submitted_dt.isoformat() if submitted_dt else None,
        "timestamp.completed": completed_dt.isoformat() if completed_dt else None,
        "span.job": span_job,
        "num_polls": job_run.num_polls,
    }

    # Execution specific information
    for i, (execution, execution_result) in enumerate(zip(executions, result.executions)):
        job_summary_dict.update(
            {
                f"execution[{i}].name": execution.name,
                f"execution[{i}].shots": execution_result.shots,
                f"execution[{i}].num_outcomes": len(execution_result.counts),
            }
        )

    # Backend configuration without secrets
    flat_config = _flatten_options({"config": job_run.backend_config}).items()
    job_summary_dict.update(flat_config)

    return job_summary_dict


def _flatten_options(d, parent_key=""):
    flattened = {}

    for k, v in d.items():
        new_key = f"{parent_key}.{k}" if parent_key else k
        if isinstance(v, dict):
            flattened.update(_flatten_options(v, new_key))
        else:
            flattened[new_key] = repr(v)

    return flattened

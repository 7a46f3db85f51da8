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
"""Test serializable job handle."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from prefect_qrest.exceptions import JobExecutionFailed, MalformedResponse, TransportError
from prefect_qrest.jobs import QuantumJobRun
from prefect_qrest.models import SampleResult


@pytest.fixture
def pending_run() -> QuantumJobRun:
    """Fixture to return a job handle just after submission."""
    return QuantumJobRun(
        backend_name="X",
        job_id="j1",
        status_path="/jobs/j1",
        backend_config={"base_url": "https://fake-backend.example.com", "kernel_names": '["k1"]'},
        poll_interval=2.5,
    )


def test_round_trip_pending(
    pending_run: QuantumJobRun,
) -> None:
    """Test pending handle is restored with the same identity and state."""
    restored = QuantumJobRun.deserialize(pending_run.serialize())

    assert restored == pending_run
    assert restored.pending()
    assert restored.poll_interval == 2.5


def test_round_trip_done(
    pending_run: QuantumJobRun,
) -> None:
    """Test completed handle keeps its result."""
    result = SampleResult.from_counts({"00": 3, "11": 5}, name="k1")
    pending_run.mark_done(result)

    restored = QuantumJobRun.deserialize(pending_run.serialize().decode("utf-8"))

    assert restored.state == "DONE"
    assert restored.result == result
    assert restored.completed_at == pending_run.completed_at


@pytest.mark.asyncio(loop_scope="function")
async def test_round_trip_failed(
    pending_run: QuantumJobRun,
) -> None:
    """Test failed handle reraises an error of the same type and reason."""
    pending_run.mark_failed(JobExecutionFailed(reason="Job j1 was canceled.", job_id="j1", error_code=42))

    restored = QuantumJobRun.deserialize(pending_run.serialize())

    with pytest.raises(JobExecutionFailed) as exc_info:
        await restored.fetch_result()

    assert exc_info.value.reason == "Job j1 was canceled."
    assert exc_info.value.job_id == "j1"
    assert exc_info.value.error_code == "42"
    assert exc_info.value.retry is False


@pytest.mark.asyncio(loop_scope="function")
async def test_fetch_result_of_done_job(
    pending_run: QuantumJobRun,
) -> None:
    """Test terminal handle returns result without polling."""
    result = SampleResult.from_counts({"1": 1})
    pending_run.mark_done(result)

    assert await pending_run.fetch_result() == result


def test_terminal_state_is_write_once(
    pending_run: QuantumJobRun,
) -> None:
    """Test the first terminal transition wins."""
    result = SampleResult.from_counts({"1": 1})

    assert pending_run.mark_done(result) is True
    assert pending_run.mark_failed(MalformedResponse(reason="late")) is False
    assert pending_run.mark_done(SampleResult.from_counts({"0": 1})) is False

    assert pending_run.state == "DONE"
    assert pending_run.result == result
    assert pending_run.failure is None


def test_retry_flag_is_kept(
    pending_run: QuantumJobRun,
) -> None:
    """Test failure record keeps the retry flag of the error."""
    pending_run.mark_failed(TransportError(reason="HTTP 503.", status=503))

    error = pending_run.failure.to_exception()

    assert isinstance(error, TransportError)
    assert error.retry is True


def test_file_round_trip(
    pending_run: QuantumJobRun,
    tmp_path: Path,
) -> None:
    """Test handle written to a file is loaded back."""
    path = tmp_path / "job.json"
    pending_run.to_file(path)

    assert QuantumJobRun.from_file(path) == pending_run


def test_invalid_state() -> None:
    """Test unknown state string is rejected."""
    with pytest.raises(ValidationError):
        QuantumJobRun(
            backend_name="X",
            job_id="j1",
            status_path="/jobs/j1",
            state="RUNNING",
        )

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
"""Test IonQ specific implementation of server helper."""

import pytest

from prefect_qrest.exceptions import JobExecutionFailed, MalformedResponse, MissingConfiguration
from prefect_qrest.models import GLOBAL_REGISTER, KernelExecution
from prefect_qrest.vendors.ionq import IonQCredentials, IonQServerHelper


@pytest.fixture
def helper(
    ionq_credentials: IonQCredentials,
) -> IonQServerHelper:
    """Fixture to return initialized IonQ helper with 1024 shots."""
    return ionq_credentials.get_client()


def test_save_load_credentials() -> None:
    """Test saving and loading credential block in the prefect server"""
    IonQCredentials.register_type_and_schema()
    credentials = IonQCredentials(
        api_key="test-key",
        target="qpu.aria-1",
        noise_model="aria-1",
    )
    credentials.save("test-ionq-block")
    loaded = IonQCredentials.load("test-ionq-block")

    assert loaded.api_key.get_secret_value() == "test-key"
    assert loaded.get_backend_config() == {
        "target": "qpu.aria-1",
        "shots": "1000",
        "api_key": "test-key",
        "noise_model": "aria-1",
    }


def test_missing_api_key() -> None:
    """Test API key is required."""
    with pytest.raises(MissingConfiguration) as exc_info:
        IonQCredentials().get_client()

    assert exc_info.value.key == "api_key"


def test_api_key_from_env(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Test API key is resolved from environment variable."""
    monkeypatch.setenv("IONQ_API_KEY", "env-key")

    helper = IonQCredentials().get_client()

    assert helper.get_headers()["Authorization"] == "apiKey env-key"
    assert helper.requires_login is False


def test_persistable_config(
    helper: IonQServerHelper,
) -> None:
    """Test API key is never persisted."""
    persisted = helper.get_persistable_config()

    assert "api_key" not in persisted
    assert persisted["shots"] == "1024"
    assert persisted["base_url"] == "https://api.ionq.co/v0.3"


def test_create_job(
    helper: IonQServerHelper,
) -> None:
    """Test multi-circuit job body."""
    path, headers, body = helper.create_job(
        [KernelExecution(name="bell", code="qasm-1"), KernelExecution(name="ghz", code="qasm-2")],
    )

    assert path == "/jobs"
    assert headers["Authorization"] == "apiKey test-ionq-key"
    assert body == {
        "target": "simulator",
        "shots": 1024,
        "name": "bell (+1)",
        "input": {
            "format": "openqasm",
            "circuits": [{"name": "bell", "data": "qasm-1"}, {"name": "ghz", "data": "qasm-2"}],
        },
    }


def test_create_job_with_noise() -> None:
    """Test noise model is sent to the simulator."""
    helper = IonQCredentials(api_key="k", noise_model="harmony").get_client()

    _, _, body = helper.create_job([KernelExecution(name="bell", code="qasm")])

    assert body["name"] == "bell"
    assert body["noise"] == {"model": "harmony"}


def test_status_path(
    helper: IonQServerHelper,
) -> None:
    """Test status is read from the job resource itself."""
    assert helper.construct_status_path({"id": "abc", "status": "ready"}) == "/jobs/abc"
    assert helper.construct_results_path("abc") is None


@pytest.mark.parametrize(
    "status, expected",
    [
        ("submitted", False),
        ("ready", False),
        ("running", False),
        ("completed", True),
    ],
)
def test_job_is_done(
    helper: IonQServerHelper,
    status: str,
    expected: bool,
) -> None:
    """Test status response interpretation."""
    assert helper.job_is_done({"id": "abc", "status": status}) is expected


def test_job_failed(
    helper: IonQServerHelper,
) -> None:
    """Test failed job reports vendor error code."""
    with pytest.raises(JobExecutionFailed) as exc_info:
        helper.job_is_done(
            {
                "id": "abc",
                "status": "failed",
                "failure": {"error": "Circuit too large", "code": "CircuitTooLarge"},
            }
        )

    assert exc_info.value.message == "Job execution failed (CircuitTooLarge); Circuit too large"
    assert exc_info.value.job_id == "abc"


def test_job_canceled(
    helper: IonQServerHelper,
) -> None:
    """Test canceled job is a failure."""
    with pytest.raises(JobExecutionFailed):
        helper.job_is_done({"id": "abc", "status": "canceled"})


def test_single_histogram(
    helper: IonQServerHelper,
) -> None:
    """Test probability histogram is converted into counts of bitstrings."""
    result = helper.process_results(
        {"id": "abc", "qubits": 2, "data": {"histogram": {"0": 0.5, "3": 0.5}}},
        job_id="abc",
    )

    assert result.register_names == [GLOBAL_REGISTER]
    assert result.counts == {"00": 512, "11": 512}


def test_multiple_histograms(
    helper: IonQServerHelper,
) -> None:
    """Test histograms of a multi-circuit job are ordered by submission."""
    helper.create_job([KernelExecution(name="bell", code="q1"), KernelExecution(name="one", code="q2")])

    result = helper.process_results(
        {
            "id": "abc",
            "qubits": 3,
            "shots": 100,
            "data": {
                "histograms": {
                    "one": {"1": 1.0},
                    "bell": {"0": 0.5, "6": 0.5, "2": 0.0},
                }
            },
        },
        job_id="abc",
    )

    assert result.register_names == ["bell", "one"]
    assert result.get_counts("bell") == {"000": 50, "110": 50}
    assert result.get_counts("one") == {"001": 100}


@pytest.mark.parametrize(
    "response",
    [
        {"data": {"histogram": {"0": 1.0}}},
        {"qubits": 1},
        {"qubits": 1, "data": {}},
        {"qubits": 1, "data": {"histogram": {"zero": 1.0}}},
        {"qubits": 1, "data": {"histogram": {"0": "1.0"}}},
        {"qubits": 1, "data": {"histogram": {"0": -0.5}}},
    ],
)
def test_process_results_malformed(
    helper: IonQServerHelper,
    response: dict,
) -> None:
    """Test malformed results are rejected."""
    with pytest.raises(MalformedResponse):
        helper.process_results(response, job_id="abc")


def test_missing_histogram_of_kernel(
    helper: IonQServerHelper,
) -> None:
    """Test histogram of a submitted kernel must be present."""
    helper.create_job([KernelExecution(name="bell", code="q1"), KernelExecution(name="one", code="q2")])

    with pytest.raises(MalformedResponse):
        helper.process_results(
            {"qubits": 1, "data": {"histograms": {"bell": {"0": 1.0}, "two": {"1": 1.0}}}},
            job_id="abc",
        )

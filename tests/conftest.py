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
import os
from collections.abc import Generator
from unittest.mock import AsyncMock

import pytest
from prefect.testing.utilities import prefect_test_harness
from pytest_mock import MockerFixture
from qiskit.circuit import QuantumCircuit

from prefect_qrest.registry import BackendRegistry
from prefect_qrest.transport import AiohttpTransport
from prefect_qrest.vendors import FermioniqCredentials, IonQCredentials, IonQServerHelper
from utils import (
    FAKE_BACKEND,
    IONQ_COMPLETED_RESPONSE,
    IONQ_SUBMIT_RESPONSE,
    FakeServerHelper,
    StubTransport,
)


@pytest.fixture(autouse=True, scope="module")
def prefect_test_fixture(
    tmp_path_factory: pytest.TempPathFactory,
) -> Generator[None, None, None]:
    """Fixture to start prefect server in test mode."""
    storage_dir = tmp_path_factory.mktemp("storage")
    os.environ["PREFECT_LOCAL_STORAGE_PATH"] = str(storage_dir)
    with prefect_test_harness():
        yield


@pytest.fixture(autouse=True)
def clean_vendor_env(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Fixture to hide vendor secrets of the developer environment."""
    for key in (
        "FERMIONIQ_API_KEY",
        "FERMIONIQ_ACCESS_TOKEN_ID",
        "FERMIONIQ_ACCESS_TOKEN_SECRET",
        "IONQ_API_KEY",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def bell_circ() -> QuantumCircuit:
    """Fixture to return Bell circuit."""
    vqc = QuantumCircuit(2, name="bell")
    vqc.h(0)
    vqc.cx(0, 1)
    vqc.measure_all()

    return vqc


@pytest.fixture
def stub_transport() -> StubTransport:
    """Fixture to return transport replaying scripted responses."""
    return StubTransport()


@pytest.fixture
def fake_registry(
    stub_transport: StubTransport,
) -> BackendRegistry:
    """Fixture to return registry with the fake backend sharing the stub transport."""
    registry = BackendRegistry()
    registry.register(FAKE_BACKEND, lambda: FakeServerHelper(transport=stub_transport))
    return registry


@pytest.fixture
def fermioniq_credentials() -> FermioniqCredentials:
    """Fixture to return Fermioniq credentials with dummy secrets."""
    return FermioniqCredentials(
        access_token_id="test-token-id",
        access_token_secret="test-token-secret",
        api_key="test-function-key",
    )


@pytest.fixture
def ionq_credentials() -> IonQCredentials:
    """Fixture to return IonQ credentials with dummy secrets."""
    return IonQCredentials(
        api_key="test-ionq-key",
        shots=1024,
    )


@pytest.fixture
def mock_ionq_api(
    mocker: MockerFixture,
) -> tuple[AsyncMock, AsyncMock]:
    """Fixture to patch aiohttp transport with IonQ job completing at the first status request.

    Returns mocks of post and get methods whose side effects can be overridden.
    """
    mocker.patch.object(IonQServerHelper, "next_polling_interval", return_value=0.01)
    mock_post = mocker.patch.object(AiohttpTransport, "post", return_value=IONQ_SUBMIT_RESPONSE)
    mock_get = mocker.patch.object(AiohttpTransport, "get", return_value=IONQ_COMPLETED_RESPONSE)
    return mock_post, mock_get

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
"""Test execution hash."""

from qiskit.circuit import QuantumCircuit

from prefect_qrest.models import KernelExecution
from prefect_qrest.utils.hasher import execution_hasher


def _ghz(n: int) -> QuantumCircuit:
    circ = QuantumCircuit(n, name="ghz")
    circ.h(0)
    for i in range(1, n):
        circ.cx(i - 1, i)
    circ.measure_all()
    return circ


def test_same_inputs() -> None:
    """Test the same kernel built twice gives the same key."""
    key1 = execution_hasher([KernelExecution.coerce(_ghz(3))], {"shots": "100"}, "ionq")
    key2 = execution_hasher([KernelExecution.coerce(_ghz(3))], {"shots": "100"}, "ionq")

    assert key1 == key2


def test_config_order_independent() -> None:
    """Test key doesn't depend on configuration insertion order."""
    executions = [KernelExecution(name="k", code="c")]

    key1 = execution_hasher(executions, {"a": "1", "b": "2"}, "ionq")
    key2 = execution_hasher(executions, {"b": "2", "a": "1"}, "ionq")

    assert key1 == key2


def test_different_inputs() -> None:
    """Test any input difference gives a new key."""
    executions = [KernelExecution.coerce(_ghz(3))]
    reference = execution_hasher(executions, {"shots": "100"}, "ionq")

    assert execution_hasher([KernelExecution.coerce(_ghz(4))], {"shots": "100"}, "ionq") != reference
    assert execution_hasher(executions, {"shots": "200"}, "ionq") != reference
    assert execution_hasher(executions, {"shots": "100"}, "fermioniq") != reference

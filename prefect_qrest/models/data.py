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
"""Common data structures."""

from typing import Any, Literal, NamedTuple, TypeAlias, get_args

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt
from qiskit import qasm2, qasm3
from qiskit.circuit import QuantumCircuit
from qiskit.primitives.containers import BitArray

from prefect_qrest import exceptions
from prefect_qrest.exceptions import QuantumJobError

JOB_STATE = Literal["CREATED", "SUBMITTED", "POLLING", "DONE", "FAILED"]
"""Reserved state string of a job in the lifecycle driver."""

ServerMessage: TypeAlias = dict[str, Any]
"""Parsed JSON object returned by a backend. Its shape is backend-defined."""

GLOBAL_REGISTER: str = "__global__"


class KernelExecution(BaseModel):
    """
    A compiled circuit ready for submission.

    The payload is produced by an external compiler and is never parsed here.

    Attributes:
        name: Name of the originating kernel.
        code: Serialized circuit in the wire format the backend accepts.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(
        description="Name of the originating kernel.",
        min_length=1,
    )

    code: str = Field(
        description="Serialized circuit in the wire format the backend accepts.",
    )

    @classmethod
    def from_circuit(
        cls,
        circuit: QuantumCircuit,
        qasm_version: Literal[2, 3] = 2,
    ) -> "KernelExecution":
        """Serialize a Qiskit circuit into OpenQASM.

        Args:
            circuit: Circuit to serialize. Its name becomes the kernel name.
            qasm_version: OpenQASM major version of the payload.

        Returns:
            A kernel execution carrying the OpenQASM string.
        """
        match qasm_version:
            case 2:
                code = qasm2.dumps(circuit)
            case 3:
                code = qasm3.dumps(circuit)
            case _:
                raise ValueError(f"Unsupported OpenQASM version {qasm_version}.")
        return cls(name=circuit.name, code=code)

    @classmethod
    def coerce(
        cls,
        execution: "KernelExecutionLike",
        qasm_version: Literal[2, 3] = 2,
    ) -> "KernelExecution":
        """Coerce a kernel execution like object into `KernelExecution`."""
        match execution:
            case KernelExecution():
                return execution
            case QuantumCircuit():
                return cls.from_circuit(execution, qasm_version=qasm_version)
            case (str() as name, str() as code):
                return cls(name=name, code=code)
            case _:
                raise TypeError(f"Cannot coerce {type(execution).__name__} into a kernel execution.")


KernelExecutionLike: TypeAlias = KernelExecution | QuantumCircuit | tuple[str, str]


class ServerJobPayload(NamedTuple):
    """
    A job request built by a server helper.

    The driver sends it as is and never mutates it.

    Attributes:
        path: Submission path relative to the backend base URL.
        headers: Request headers.
        body: JSON serializable request body.
    """

    path: str
    headers: dict[str, str]
    body: Any


class ExecutionResult(BaseModel):
    """Measurement histogram of a single kernel execution."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(
        default=GLOBAL_REGISTER,
        description="Kernel or register name that produced these counts.",
    )

    counts: dict[str, NonNegativeInt] = Field(
        description="Observed count of each measured bitstring.",
    )

    @property
    def shots(self) -> int:
        return sum(self.counts.values())


class SampleResult(BaseModel):
    """
    Backend-agnostic outcome of a job.

    It holds one histogram for each kernel submitted in the job.

    Attributes:
        executions: Histograms in submission order.
    """

    model_config = ConfigDict(frozen=True)

    executions: tuple[ExecutionResult, ...] = Field(
        description="Histograms in submission order.",
        min_length=1,
    )

    @classmethod
    def from_counts(
        cls,
        counts: dict[str, int],
        name: str = GLOBAL_REGISTER,
    ) -> "SampleResult":
        """Create result of a single histogram."""
        return cls(executions=(ExecutionResult(name=name, counts=counts),))

    @property
    def register_names(self) -> list[str]:
        return [e.name for e in self.executions]

    @property
    def counts(self) -> dict[str, int]:
        """Histogram of a single execution job."""
        return self.get_counts()

    def get_counts(
        self,
        name: str | None = None,
    ) -> dict[str, int]:
        """Get histogram by kernel name.

        Args:
            name: Kernel name. Can be omitted when the job has a single execution.

        Returns:
            A copy of the count dictionary.
        """
        return dict(self._find(name).counts)

    def shots(
        self,
        name: str | None = None,
    ) -> int:
        return self._find(name).shots

    def probabilities(
        self,
        name: str | None = None,
    ) -> dict[str, float]:
        execution = self._find(name)
        total = execution.shots
        if total == 0:
            return {k: 0.0 for k in execution.counts}
        return {k: v / total for k, v in execution.counts.items()}

    def most_probable(
        self,
        name: str | None = None,
    ) -> str:
        counts = self._find(name).counts
        if not counts:
            raise ValueError("Histogram is empty.")
        return max(counts, key=counts.__getitem__)

    def to_bit_array(
        self,
        name: str | None = None,
    ) -> BitArray:
        """Convert a histogram into Qiskit BitArray for downstream analysis."""
        counts = self._find(name).counts
        num_bits = max((len(k) for k in counts), default=0)
        return BitArray.from_counts(counts, num_bits=num_bits)

    def _find(self, name: str | None) -> ExecutionResult:
        if name is None:
            if len(self.executions) == 1:
                return self.executions[0]
            for execution in self.executions:
                if execution.name == GLOBAL_REGISTER:
                    return execution
            raise ValueError(
                "Result contains multiple executions. "
                f"Specify one of the names: {', '.join(self.register_names)}."
            )
        for execution in self.executions:
            if execution.name == name:
                return execution
        raise KeyError(name)


class JobFailure(BaseModel):
    """
    Serializable record of a terminal job error.

    Exception objects cannot be written into a JSON record,
    so the failure is kept in this form and rebuilt on access.
    """

    error_type: Literal[
        "QuantumJobError",
        "MissingConfiguration",
        "UnknownBackend",
        "TransportError",
        "MalformedResponse",
        "JobExecutionFailed",
        "AuthenticationError",
    ]

    reason: str

    job_id: str | None = None

    error_code: str | None = None

    retry: bool = False

    @classmethod
    def from_exception(
        cls,
        ex: QuantumJobError,
    ) -> "JobFailure":
        known = get_args(cls.model_fields["error_type"].annotation)
        # Vendor subclasses are recorded as their nearest known ancestor.
        error_type = next(k.__name__ for k in type(ex).__mro__ if k.__name__ in known)
        return cls(
            error_type=error_type,
            reason=ex.reason,
            job_id=ex.job_id,
            error_code=ex.error_code,
            retry=ex.retry,
        )

    def to_exception(self) -> QuantumJobError:
        exc_class = getattr(exceptions, self.error_type)
        return exc_class(
            reason=self.reason,
            job_id=self.job_id,
            error_code=self.error_code,
            retry=self.retry,
        )

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
This module implements the lifecycle of a quantum job on a REST backend.

`QuantumJob` submits compiled kernels through the lifecycle driver
and returns a serializable `QuantumJobRun` handle.
The handle can be awaited, polled step by step, or written to disk
and resumed in another process without resubmitting the job.
"""

from .driver import JobLifecycleDriver
from .job import QuantumJob, QuantumJobRun
from .runner import retry_on_failure, run_quantum_job

__all__ = [
    "JobLifecycleDriver",
    "QuantumJob",
    "QuantumJobRun",
    "retry_on_failure",
    "run_quantum_job",
]

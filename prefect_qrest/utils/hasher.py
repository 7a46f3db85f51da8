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
"""Compute unique hash of job inputs."""

import hashlib
import pickle
from collections.abc import Mapping

from prefect_qrest.models import KernelExecution


def execution_hasher(
    executions: list[KernelExecution],
    backend_config: Mapping[str, str],
    backend_name: str,
) -> str:
    """Compute task cache key of run_quantum_job function."""

    # The payload is an opaque string, so the same kernel always gives the same bytes.
    # Secrets must not be included in the configuration.
    execution_bytes = [pickle.dumps((e.name, e.code), protocol=4) for e in executions]
    config = sorted(backend_config.items())

    inputs = pickle.dumps((execution_bytes, config, backend_name), protocol=4)
    return hashlib.sha256(inputs).hexdigest()

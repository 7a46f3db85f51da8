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
This module abstracts the server helper interface and common data structures.

A job is a list of compiled kernel executions whose payload is opaque to this package.
Each backend provides a server helper that knows how to authenticate,
build the job request, and interpret the status and result responses
of its own REST API.

The protocol does not prescribe a universal wire schema.
Response objects are passed around as untyped JSON messages,
and each helper reads only the fields its vendor documents.
"""

from .data import (
    GLOBAL_REGISTER,
    JOB_STATE,
    ExecutionResult,
    JobFailure,
    KernelExecution,
    KernelExecutionLike,
    SampleResult,
    ServerJobPayload,
    ServerMessage,
)
from .interface import AsyncTransportInterface, ServerHelperInterface

__all__ = [
    "AsyncTransportInterface",
    "ExecutionResult",
    "GLOBAL_REGISTER",
    "JOB_STATE",
    "JobFailure",
    "KernelExecution",
    "KernelExecutionLike",
    "SampleResult",
    "ServerHelperInterface",
    "ServerJobPayload",
    "ServerMessage",
]

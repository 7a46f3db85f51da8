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
"""Field access on untyped server messages.

A missing or mis-typed field raises `MalformedResponse` instead of
falling back to a default value.
"""

from typing import Any, TypeVar

from prefect_qrest.exceptions import MalformedResponse

T = TypeVar("T")

_MISSING = object()


def require_field(
    message: Any,
    key: str,
    expected_type: type[T] | tuple[type, ...],
    job_id: str | None = None,
) -> T:
    """Read a mandatory field of a JSON object.

    Args:
        message: Parsed JSON response.
        key: Field name.
        expected_type: Allowed Python type(s) of the value.
        job_id: Job ID reported with the error.

    Raises:
        MalformedResponse: When the field is absent or has an unexpected type.

    Returns:
        Field value.
    """
    value = _lookup(message, key, job_id)
    if value is _MISSING:
        raise MalformedResponse(
            reason=f"Response doesn't contain the field '{key}'.",
            response=message,
            job_id=job_id,
        )
    _check_type(message, key, value, expected_type, job_id)
    return value


def optional_field(
    message: Any,
    key: str,
    expected_type: type[T] | tuple[type, ...],
    job_id: str | None = None,
) -> T | None:
    """Read an optional field of a JSON object.

    Absence and JSON null both return None, but a present value
    of an unexpected type still raises.
    """
    value = _lookup(message, key, job_id)
    if value is _MISSING or value is None:
        return None
    _check_type(message, key, value, expected_type, job_id)
    return value


def _lookup(message: Any, key: str, job_id: str | None) -> Any:
    if not isinstance(message, dict):
        raise MalformedResponse(
            reason=f"Expected a JSON object but got {type(message).__name__}.",
            response=message,
            job_id=job_id,
        )
    return message.get(key, _MISSING)


def _check_type(
    message: Any,
    key: str,
    value: Any,
    expected_type: type | tuple[type, ...],
    job_id: str | None,
) -> None:
    allowed = expected_type if isinstance(expected_type, tuple) else (expected_type,)
    # JSON booleans are not numbers
    if isinstance(value, bool) and bool not in allowed:
        ok = False
    else:
        ok = isinstance(value, allowed)
    if not ok:
        names = " | ".join(t.__name__ for t in allowed)
        raise MalformedResponse(
            reason=f"Field '{key}' must be {names} but got {type(value).__name__}.",
            response=message,
            job_id=job_id,
        )

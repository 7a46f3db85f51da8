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
"""Context dependent logger and helpers to keep secrets out of log records."""

import logging
import sys
from collections.abc import Mapping
from logging import Logger
from typing import TYPE_CHECKING, TypeAlias

from prefect.exceptions import MissingContextError
from prefect.logging.loggers import get_logger, get_run_logger

if sys.version_info >= (3, 12):
    LoggingAdapter = logging.LoggerAdapter[logging.Logger]
else:
    if TYPE_CHECKING:
        LoggingAdapter = logging.LoggerAdapter[logging.Logger]
    else:
        LoggingAdapter = logging.LoggerAdapter

LoggerOrAdapter: TypeAlias = Logger | LoggingAdapter

SENSITIVE_HEADERS: frozenset[str] = frozenset(
    {
        "authorization",
        "x-functions-key",
        "x-api-key",
    }
)


class LoggingMixin:
    """Provide context dependent logging.

    When the logger is called from a flow or task run, it returns the Prefect run logger
    so that job progress shows up in the Prefect UI.
    Otherwise it returns the Prefect named logger with the class name.
    """

    @property
    def logger(self) -> LoggerOrAdapter:
        """Return a logger depending on context."""
        try:
            return get_run_logger()
        except MissingContextError:
            return get_logger(self.__class__.__name__)


def redact_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Return a copy of request headers that is safe to log."""
    return {k: "***" if k.lower() in SENSITIVE_HEADERS else v for k, v in headers.items()}

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
"""HTTP transport client for backend REST APIs.

Retry policy doesn't belong here. A failed request is reported
once as `TransportError` and the caller decides what to do.
"""

import json
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import aiohttp

from prefect_qrest.exceptions import MalformedResponse, TransportError
from prefect_qrest.models import ServerMessage
from prefect_qrest.utils.logging import LoggingMixin, redact_headers

DEFAULT_TIMEOUT: int = 30
DEFAULT_SUBMIT_TIMEOUT: int = 900


def join_url(base_url: str, path: str) -> str:
    """Resolve request path against the base URL.

    Absolute URLs are returned as is.
    """
    if path.startswith(("http://", "https://")):
        return path
    if not path:
        return base_url
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


@asynccontextmanager
async def rest_session_ctx(
    headers: dict[str, str],
    timeout: int = DEFAULT_TIMEOUT,
) -> AsyncGenerator[aiohttp.ClientSession, None]:
    """Asynchronous HTTP session context with error handling.

    Catch client error not to print sensitive header in the stack trace.
    """
    client_timeout = aiohttp.ClientTimeout(total=timeout)
    try:
        async with aiohttp.ClientSession(
            timeout=client_timeout,
            headers=headers,
            raise_for_status=True,
        ) as session:
            yield session
    except aiohttp.ContentTypeError as ex:
        raise MalformedResponse(
            reason=f"Non JSON response from {ex.request_info.url}.",
        ) from None
    except json.JSONDecodeError as ex:
        raise MalformedResponse(
            reason=f"Response body is not valid JSON; {ex.msg} at position {ex.pos}.",
        ) from None
    except aiohttp.ClientResponseError as ex:
        raise TransportError(
            reason=f"HTTP {ex.status} on {ex.request_info.url}.",
            status=ex.status,
        ) from None
    except aiohttp.ClientConnectionError:
        raise TransportError(
            reason="Connection failed.",
        ) from None
    except TimeoutError:
        raise TransportError(
            reason="HTTP request timed out.",
        ) from None
    except aiohttp.ClientError as ex:
        raise TransportError(
            reason=f"General HTTP client error {ex.__class__.__name__}.",
        ) from None


class AiohttpTransport(LoggingMixin):
    """Transport client built on aiohttp."""

    def __init__(
        self,
        timeout: int = DEFAULT_TIMEOUT,
        submit_timeout: int = DEFAULT_SUBMIT_TIMEOUT,
    ):
        """Create new transport.

        Args:
            timeout: Total timeout in seconds of status and login requests.
            submit_timeout: Total timeout in seconds of job submission requests.
        """
        self.timeout = timeout
        self.submit_timeout = submit_timeout

    async def post(
        self,
        base_url: str,
        path: str,
        json_body: Any,
        headers: dict[str, str],
    ) -> ServerMessage:
        url = join_url(base_url, path)
        self.logger.debug(f"POST request for {url} with headers {redact_headers(headers)}")
        data = json.dumps(json_body)
        async with rest_session_ctx(headers, timeout=self.submit_timeout) as session:
            async with session.post(url, data=data) as resp:
                ret = await resp.json()
        return ret

    async def get(
        self,
        base_url: str,
        path: str,
        headers: dict[str, str],
    ) -> ServerMessage:
        url = join_url(base_url, path)
        self.logger.debug(f"GET request for {url}")
        async with rest_session_ctx(headers, timeout=self.timeout) as session:
            async with session.get(url) as resp:
                ret = await resp.json()
        return ret

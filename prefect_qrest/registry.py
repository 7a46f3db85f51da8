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
"""Backend registry that resolves a backend name to a server helper.

Vendor packages register their helpers on import.
New backends can be plugged in without the job lifecycle driver
depending on concrete helper classes.
"""

import threading
from collections.abc import Callable
from typing import TypeAlias

from prefect_qrest.exceptions import UnknownBackend
from prefect_qrest.models import ServerHelperInterface

ServerHelperFactory: TypeAlias = Callable[[], ServerHelperInterface]


class BackendRegistry:
    """Mapping of backend names to zero-argument server helper factories."""

    def __init__(self):
        self._factories: dict[str, ServerHelperFactory] = {}
        self._lock = threading.Lock()

    def register(
        self,
        name: str,
        factory: ServerHelperFactory,
    ) -> None:
        """Associate a backend name with a factory.

        Registering the same name again overwrites the previous factory.

        Args:
            name: Backend name.
            factory: Callable that returns a new, uninitialized server helper.
        """
        with self._lock:
            self._factories[name] = factory

    def create(
        self,
        name: str,
    ) -> ServerHelperInterface:
        """Create a new server helper instance.

        Args:
            name: Backend name.

        Raises:
            UnknownBackend: When no factory is registered under the name.

        Returns:
            Uninitialized server helper.
        """
        with self._lock:
            factory = self._factories.get(name, None)
        if factory is None:
            available = ", ".join(self.names()) or "none"
            raise UnknownBackend(
                reason=f"No server helper is registered as '{name}'. Registered backends: {available}.",
            )
        return factory()

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._factories)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._factories


_DEFAULT_REGISTRY = BackendRegistry()


def register_backend(
    name: str,
    factory: ServerHelperFactory,
) -> None:
    """Register a server helper factory to the process-wide registry."""
    _DEFAULT_REGISTRY.register(name, factory)


def get_default_registry() -> BackendRegistry:
    """Return the process-wide registry populated with the bundled vendors."""
    import prefect_qrest.vendors  # noqa: F401

    return _DEFAULT_REGISTRY

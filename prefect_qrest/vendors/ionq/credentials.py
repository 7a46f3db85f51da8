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
"""Credentials for IonQ."""

from typing import ClassVar

from prefect.blocks.abstract import CredentialsBlock
from pydantic import Field, HttpUrl, SecretStr, field_validator

from prefect_qrest.registry import BackendRegistry, get_default_registry
from prefect_qrest.vendors.ionq.helper import IonQServerHelper


class IonQCredentials(CredentialsBlock):
    """
    Block used to manage IonQ API authentication and execution target.

    Attributes:
        api_key:
            IonQ API key. Resolved from `IONQ_API_KEY` when empty.
        base_url:
            A custom endpoint URL for IonQ API.
        target:
            Name of a QPU or simulator to run jobs on.
        shots:
            Number of shots per circuit.
        noise_model:
            Noise model of the simulator target.

    Example:
        Load stored IonQ credentials:

        ```python
        from prefect_qrest.vendors.ionq import IonQCredentials

        quantum_credentials = IonQCredentials.load("BLOCK_NAME")
        ```
    """

    _block_type_name = "IonQ Credentials"
    _block_type_slug = "ionq-credentials"

    backend_name: ClassVar[str] = IonQServerHelper.NAME

    api_key: SecretStr | None = Field(
        default=None,
        description="IonQ API key. Resolved from IONQ_API_KEY environment variable when empty.",
        title="API Key",
    )

    base_url: HttpUrl | None = Field(
        default=None,
        description="A custom endpoint URL for IonQ API.",
        title="Endpoint URL",
    )

    target: str = Field(
        default="simulator",
        description="Name of a QPU or simulator to run jobs on.",
        title="Target",
    )

    shots: int = Field(
        default=1000,
        description="Number of shots per circuit.",
        title="Shots",
        ge=1,
    )

    noise_model: str | None = Field(
        default=None,
        description="Noise model of the simulator target.",
        title="Noise Model",
    )

    @field_validator("base_url", mode="before")  # type: ignore
    @classmethod
    def ensure_url(cls, value: str | HttpUrl) -> HttpUrl | None:
        if isinstance(value, str):
            if not value:
                return None
            else:
                return HttpUrl(url=value)
        return value

    def get_backend_config(self) -> dict[str, str]:
        """Build backend configuration of the server helper."""
        config = {
            "target": self.target,
            "shots": str(self.shots),
        }
        if self.base_url:
            config["base_url"] = self.base_url.unicode_string().rstrip("/")
        if self.api_key is not None:
            config["api_key"] = self.api_key.get_secret_value()
        if self.noise_model:
            config["noise_model"] = self.noise_model
        return config

    def get_client(
        self,
        registry: BackendRegistry | None = None,
    ) -> IonQServerHelper:
        """Get initialized IonQ server helper."""
        registry = registry or get_default_registry()
        helper = registry.create(self.backend_name)
        helper.initialize(self.get_backend_config())
        return helper

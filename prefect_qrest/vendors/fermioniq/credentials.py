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
"""Credentials for Fermioniq."""

from typing import ClassVar

from prefect.blocks.abstract import CredentialsBlock
from pydantic import Field, HttpUrl, SecretStr, field_validator

from prefect_qrest.registry import BackendRegistry, get_default_registry
from prefect_qrest.vendors.fermioniq.helper import FermioniqServerHelper


class FermioniqCredentials(CredentialsBlock):
    """
    Block used to manage authentication and job settings of the Fermioniq emulator.

    Secrets left empty are resolved from the `FERMIONIQ_ACCESS_TOKEN_ID`,
    `FERMIONIQ_ACCESS_TOKEN_SECRET` and `FERMIONIQ_API_KEY` environment variables.

    Attributes:
        access_token_id:
            Access token ID exchanged for a session token.
        access_token_secret:
            Access token secret exchanged for a session token.
        api_key:
            API gateway key sent with every request.
        base_url:
            A custom endpoint URL for Fermioniq API.
        remote_config:
            Identifier of an emulator configuration stored on the server.
        noise_model:
            Name of a noise model applied during emulation.
        bond_dim:
            Maximum bond dimension of the tensor network.
        project_id:
            Project to charge the job to.

    Example:
        Load stored Fermioniq credentials:

        ```python
        from prefect_qrest.vendors.fermioniq import FermioniqCredentials

        quantum_credentials = FermioniqCredentials.load("BLOCK_NAME")
        ```
    """

    _block_type_name = "Fermioniq Credentials"
    _block_type_slug = "fermioniq-credentials"

    backend_name: ClassVar[str] = FermioniqServerHelper.NAME

    access_token_id: SecretStr | None = Field(
        default=None,
        description="Access token ID exchanged for a session token.",
        title="Access Token ID",
    )

    access_token_secret: SecretStr | None = Field(
        default=None,
        description="Access token secret exchanged for a session token.",
        title="Access Token Secret",
    )

    api_key: SecretStr | None = Field(
        default=None,
        description="API gateway key sent with every request.",
        title="API Key",
    )

    base_url: HttpUrl | None = Field(
        default=None,
        description="A custom endpoint URL for Fermioniq API.",
        title="Endpoint URL",
    )

    remote_config: str | None = Field(
        default=None,
        description="Identifier of an emulator configuration stored on the server.",
        title="Remote Configuration",
    )

    noise_model: str | None = Field(
        default=None,
        description="Name of a noise model applied during emulation.",
        title="Noise Model",
    )

    bond_dim: int | None = Field(
        default=None,
        description="Maximum bond dimension of the tensor network.",
        title="Bond Dimension",
        ge=1,
    )

    project_id: str | None = Field(
        default=None,
        description="Project to charge the job to.",
        title="Project ID",
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
        config = {}
        if self.base_url:
            config["base_url"] = self.base_url.unicode_string().rstrip("/")
        for key in ("access_token_id", "access_token_secret", "api_key"):
            if (secret := getattr(self, key)) is not None:
                config[key] = secret.get_secret_value()
        for key in ("remote_config", "noise_model", "bond_dim", "project_id"):
            if (value := getattr(self, key)) is not None:
                config[key] = str(value)
        return config

    def get_client(
        self,
        registry: BackendRegistry | None = None,
    ) -> FermioniqServerHelper:
        """Get initialized Fermioniq server helper."""
        registry = registry or get_default_registry()
        helper = registry.create(self.backend_name)
        helper.initialize(self.get_backend_config())
        return helper

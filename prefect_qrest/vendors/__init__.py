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
This module implements server helpers and credentials for each quantum computing vendor,
following the Prefect `CredentialsBlock` structure.
Users can create and store these credentials on the Prefect server.

Each vendor package registers its server helper to the default backend registry on import.
The credentials block must implement `.get_backend_config`, which builds
the backend configuration consumed by the helper, and `.get_client`,
which returns an initialized helper adhering to the `ServerHelperInterface` protocol.
Although users can access the helper instance via this method,
it should be considered a private class and
may be subject to future API changes without deprecation.
"""

from .fermioniq import FermioniqCredentials, FermioniqServerHelper
from .ionq import IonQCredentials, IonQServerHelper

QuantumCredentialsT = FermioniqCredentials | IonQCredentials

__all__ = [
    "FermioniqCredentials",
    "FermioniqServerHelper",
    "IonQCredentials",
    "IonQServerHelper",
    "QuantumCredentialsT",
]

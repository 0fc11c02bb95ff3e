# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Models for the task topology: containers, their readiness probes, mounts,
and the typed dependency edges between them.
"""
from typing import List, Dict, Literal, Optional, Union
from pydantic import BaseModel, Field, field_validator
from enum import Enum


class DependencyCondition(str, Enum):
    """
    Lifecycle state a dependency must reach before its dependent may start.
    """
    START = "START"
    SUCCESS = "SUCCESS"
    HEALTHY = "HEALTHY"

    @classmethod
    def parse(cls, value: Union[str, "DependencyCondition"]) -> "DependencyCondition":
        """
        Parses a condition name, accepting docker-compose spellings as well.

        :param value: Condition name in any case.
        :return: The matching condition.
        :raises ValueError: If the name is not a known condition.
        """
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        if key in _CONDITION_ALIASES:
            return _CONDITION_ALIASES[key]
        raise ValueError(f"Unknown dependency condition: {value}")


_CONDITION_ALIASES = {
    "start": DependencyCondition.START,
    "started": DependencyCondition.START,
    "service_started": DependencyCondition.START,
    "success": DependencyCondition.SUCCESS,
    "service_completed_successfully": DependencyCondition.SUCCESS,
    "healthy": DependencyCondition.HEALTHY,
    "service_healthy": DependencyCondition.HEALTHY,
}


class HealthCheck(BaseModel):
    """
    Readiness probe run inside the container. Times are in seconds.
    """
    command: List[str]
    interval: int = 30
    timeout: int = 5
    retries: int = Field(3, ge=1)
    start_period: int = 0
    healthy_threshold: int = Field(1, ge=1)

    @field_validator("command", mode="before")
    @classmethod
    def _shell_command(cls, value):
        if isinstance(value, str):
            return ["CMD-SHELL", value]
        return value


class ContainerDependency(BaseModel):
    """
    A directed edge: the owning container waits for `container` to reach `condition`.
    """
    container: str
    condition: DependencyCondition = DependencyCondition.START

    @field_validator("condition", mode="before")
    @classmethod
    def _parse_condition(cls, value):
        return DependencyCondition.parse(value)


class MountPoint(BaseModel):
    """
    Mounts a named task volume into a container.
    """
    source_volume: str
    container_path: str
    read_only: bool = False


class PortMapping(BaseModel):
    container_port: int
    host_port: Optional[int] = None
    protocol: Literal["tcp", "udp"] = "tcp"


class SecretReference(BaseModel):
    """
    A Secrets Manager secret, optionally narrowed to one JSON field.
    """
    secret: str
    field: Optional[str] = None


class VolumeDefinition(BaseModel):
    """
    An EFS-backed task volume scoped either to a root directory or to an access point.
    """
    name: str
    root_directory: Optional[str] = None
    access_point: Optional[str] = None
    transit_encryption: bool = True
    iam_authorization: bool = True


class ContainerDefinition(BaseModel):
    """
    A single process in the task topology.
    """
    name: str
    image: str
    essential: bool = True

    # Resources
    cpu: Optional[int] = None
    memory_reservation_mib: Optional[int] = None
    memory_limit_mib: Optional[int] = None

    # Execution
    entry_point: List[str] = []
    command: List[str] = []
    user: Optional[str] = None
    environment: Dict[str, str] = {}
    secrets: Dict[str, SecretReference] = {}
    port_mappings: List[PortMapping] = []

    # Lifecycle
    health_check: Optional[HealthCheck] = None
    depends_on: List[ContainerDependency] = []

    # Storage
    mount_points: List[MountPoint] = []

    def dependency_names(self) -> List[str]:
        return [dep.container for dep in self.depends_on]

    def writable_volumes(self) -> List[str]:
        return [m.source_volume for m in self.mount_points if not m.read_only]


class TaskTopology(BaseModel):
    """
    The complete process dependency graph of one task, with its shared volumes.
    Containers keep their declaration order.
    """
    name: str
    network_mode: Literal["awsvpc", "bridge", "host"] = "awsvpc"
    log_group: Optional[str] = None
    stream_prefix: Optional[str] = None
    volumes: Dict[str, VolumeDefinition] = Field(default_factory=dict)
    containers: Dict[str, ContainerDefinition] = Field(default_factory=dict)

    @field_validator("network_mode", mode="before")
    @classmethod
    def _lower_network_mode(cls, value):
        if isinstance(value, str):
            return value.lower()
        return value

    @property
    def log_group_name(self) -> str:
        return self.log_group or f"/ecs/{self.name}"

    @property
    def log_stream_prefix(self) -> str:
        return self.stream_prefix or self.name

    def secret_names(self) -> List[str]:
        """
        Distinct Secrets Manager names referenced by any container, in first-use order.
        """
        names: List[str] = []
        for container in self.containers.values():
            for ref in container.secrets.values():
                if ref.secret not in names:
                    names.append(ref.secret)
        return names

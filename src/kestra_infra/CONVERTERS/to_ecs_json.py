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
Converter that renders a topology as an ECS task definition document
(the JSON accepted by `aws ecs register-task-definition --cli-input-json`).
"""
import json
import os
from typing import Any, Dict, Mapping, Optional
from ..MODELS.task_topology import TaskTopology, ContainerDefinition, SecretReference
from ..UTILS.string_interpolation import EnvironmentInterpolator


class EcsJsonConverter:
    """
    Converts a topology into an ECS task definition document.
    """

    def __init__(self, topology: TaskTopology, file_system_id: str = "fs-PLACEHOLDER",
                 region: str = "eu-central-1", account: Optional[str] = None,
                 context: Optional[Mapping[str, str]] = None,
                 access_point_ids: Optional[Mapping[str, str]] = None):
        """
        Initializes the converter.

        :param topology: The parsed topology.
        :param file_system_id: EFS file system id used by every volume.
        :param region: Region used in log and secret ARNs.
        :param account: Account id used in secret ARNs.
        :param context: Values for ${VAR} placeholders in environment values.
        :param access_point_ids: Access point ids keyed by access point name.
        """
        self.topology = topology
        self.file_system_id = file_system_id
        self.region = region
        self.account = account or "123456789012"
        self.context = dict(context or {})
        self.access_point_ids = dict(access_point_ids or {})

    def render(self) -> Dict[str, Any]:
        """
        Builds the task definition document.
        """
        return {
            "family": self.topology.name,
            "networkMode": self.topology.network_mode,
            "requiresCompatibilities": ["EC2"],
            "volumes": [self._volume(name) for name in self.topology.volumes],
            "containerDefinitions": [self._container(c) for c in self.topology.containers.values()],
        }

    def convert(self, output_dir: str = "dist") -> str:
        """
        Writes the document to <output_dir>/<name>-task-definition.json.

        :return: The path of the written file.
        """
        os.makedirs(output_dir, exist_ok=True)
        path = os.path.join(output_dir, f"{self.topology.name}-task-definition.json")
        with open(path, "w") as f:
            json.dump(self.render(), f, indent=2)
        print(f"ECS task definition written to {path}")
        return path

    def secret_arn(self, ref: SecretReference) -> str:
        """
        ARN of a Secrets Manager secret; a JSON field is addressed with the
        'arn:json-key::' suffix ECS understands.
        """
        arn = f"arn:aws:secretsmanager:{self.region}:{self.account}:secret:{ref.secret}"
        if ref.field:
            arn = f"{arn}:{ref.field}::"
        return arn

    def _volume(self, name: str) -> Dict[str, Any]:
        volume = self.topology.volumes[name]
        efs: Dict[str, Any] = {
            "fileSystemId": self.file_system_id,
            "transitEncryption": "ENABLED" if volume.transit_encryption else "DISABLED",
        }
        auth: Dict[str, str] = {}
        if volume.access_point:
            auth["accessPointId"] = self.access_point_ids.get(volume.access_point, volume.access_point)
        elif volume.root_directory:
            efs["rootDirectory"] = volume.root_directory
        if volume.iam_authorization:
            auth["iam"] = "ENABLED"
        if auth:
            efs["authorizationConfig"] = auth
        return {"name": name, "efsVolumeConfiguration": efs}

    def _container(self, container: ContainerDefinition) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "name": container.name,
            "image": container.image,
            "essential": container.essential,
        }
        if container.cpu is not None:
            doc["cpu"] = container.cpu
        if container.memory_reservation_mib is not None:
            doc["memoryReservation"] = container.memory_reservation_mib
        if container.memory_limit_mib is not None:
            doc["memory"] = container.memory_limit_mib
        if container.entry_point:
            doc["entryPoint"] = container.entry_point
        if container.command:
            doc["command"] = container.command
        if container.user:
            doc["user"] = container.user
        if container.environment:
            env = EnvironmentInterpolator.interpolate_mapping(container.environment, self.context)
            doc["environment"] = [{"name": k, "value": v} for k, v in env.items()]
        if container.secrets:
            doc["secrets"] = [
                {"name": k, "valueFrom": self.secret_arn(ref)} for k, ref in container.secrets.items()
            ]
        if container.port_mappings:
            doc["portMappings"] = [self._port(p) for p in container.port_mappings]
        if container.health_check:
            hc = container.health_check
            doc["healthCheck"] = {
                "command": hc.command,
                "interval": hc.interval,
                "timeout": hc.timeout,
                "retries": hc.retries,
                "startPeriod": hc.start_period,
            }
        if container.mount_points:
            doc["mountPoints"] = [
                {"sourceVolume": m.source_volume, "containerPath": m.container_path, "readOnly": m.read_only}
                for m in container.mount_points
            ]
        if container.depends_on:
            doc["dependsOn"] = [
                {"containerName": dep.container, "condition": dep.condition.value}
                for dep in container.depends_on
            ]
        doc["logConfiguration"] = {
            "logDriver": "awslogs",
            "options": {
                "awslogs-group": self.topology.log_group_name,
                "awslogs-region": self.region,
                "awslogs-stream-prefix": self.topology.log_stream_prefix,
            },
        }
        return doc

    def _port(self, port) -> Dict[str, Any]:
        mapping: Dict[str, Any] = {"containerPort": port.container_port, "protocol": port.protocol}
        # awsvpc requires hostPort to be omitted or equal to containerPort
        if port.host_port is not None:
            mapping["hostPort"] = port.host_port
        return mapping

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
Converter that renders a task topology onto an ECS EC2 task definition in a CDK stack.
"""
from typing import Dict, Mapping, Optional

from constructs import Construct
from aws_cdk import (
    Duration,
    aws_ecs as ecs,
    aws_efs as efs,
    aws_iam as iam,
    aws_secretsmanager as secretsmanager,
)

from ..MODELS.task_topology import TaskTopology, ContainerDefinition, DependencyCondition, VolumeDefinition
from ..UTILS.string_interpolation import EnvironmentInterpolator

CDK_CONDITIONS = {
    DependencyCondition.START: ecs.ContainerDependencyCondition.START,
    DependencyCondition.SUCCESS: ecs.ContainerDependencyCondition.SUCCESS,
    DependencyCondition.HEALTHY: ecs.ContainerDependencyCondition.HEALTHY,
}

PROTOCOLS = {
    "tcp": ecs.Protocol.TCP,
    "udp": ecs.Protocol.UDP,
}

NETWORK_MODES = {
    "awsvpc": ecs.NetworkMode.AWS_VPC,
    "bridge": ecs.NetworkMode.BRIDGE,
    "host": ecs.NetworkMode.HOST,
}


class CdkTaskDefinitionConverter:
    """
    Builds an Ec2TaskDefinition, its containers, mounts and container
    dependencies from a TaskTopology.
    """

    def __init__(self, scope: Construct, topology: TaskTopology, file_system: efs.IFileSystem,
                 log_driver: ecs.LogDriver, context: Optional[Mapping[str, str]] = None,
                 access_points: Optional[Mapping[str, efs.IAccessPoint]] = None):
        """
        Initializes the converter.

        :param scope: The stack the constructs are created in.
        :param topology: The validated topology.
        :param file_system: EFS file system backing every volume.
        :param log_driver: Log driver shared by all containers.
        :param context: Values for ${VAR} placeholders in environment values.
        :param access_points: EFS access points keyed by the names volumes refer to.
        """
        self.scope = scope
        self.topology = topology
        self.file_system = file_system
        self.log_driver = log_driver
        self.context = dict(context or {})
        self.access_points = dict(access_points or {})
        self.containers: Dict[str, ecs.ContainerDefinition] = {}
        self._secrets: Dict[str, secretsmanager.ISecret] = {}

    def convert(self, construct_id: str, task_role: iam.IRole, execution_role: iam.IRole) -> ecs.Ec2TaskDefinition:
        """
        Creates the task definition.

        :param construct_id: Construct id of the task definition.
        :param task_role: Role assumed by the containers.
        :param execution_role: Role the ECS agent uses to pull images and secrets.
        :return: The task definition with every container attached.
        """
        task_definition = ecs.Ec2TaskDefinition(
            self.scope, construct_id,
            network_mode=NETWORK_MODES[self.topology.network_mode],
            task_role=task_role,
            execution_role=execution_role,
            volumes=[self._volume(v) for v in self.topology.volumes.values()],
        )

        for name, container in self.topology.containers.items():
            self.containers[name] = self._add_container(task_definition, container)

        # Dependencies are wired once every container exists
        for name, container in self.topology.containers.items():
            for dep in container.depends_on:
                self.containers[name].add_container_dependencies(
                    ecs.ContainerDependency(
                        container=self.containers[dep.container],
                        condition=CDK_CONDITIONS[dep.condition],
                    )
                )

        return task_definition

    def _volume(self, volume: VolumeDefinition) -> ecs.Volume:
        authorization = None
        root_directory = volume.root_directory
        if volume.access_point:
            if volume.access_point not in self.access_points:
                raise ValueError(f"Volume {volume.name} refers to unknown access point '{volume.access_point}'")
            root_directory = None
            authorization = ecs.AuthorizationConfig(
                access_point_id=self.access_points[volume.access_point].access_point_id,
                iam="ENABLED" if volume.iam_authorization else "DISABLED",
            )
        elif volume.iam_authorization:
            authorization = ecs.AuthorizationConfig(iam="ENABLED")

        return ecs.Volume(
            name=volume.name,
            efs_volume_configuration=ecs.EfsVolumeConfiguration(
                file_system_id=self.file_system.file_system_id,
                root_directory=root_directory,
                transit_encryption="ENABLED" if volume.transit_encryption else "DISABLED",
                authorization_config=authorization,
            ),
        )

    def _add_container(self, task_definition: ecs.Ec2TaskDefinition,
                       container: ContainerDefinition) -> ecs.ContainerDefinition:
        health_check = None
        if container.health_check:
            hc = container.health_check
            health_check = ecs.HealthCheck(
                command=hc.command,
                interval=Duration.seconds(hc.interval),
                timeout=Duration.seconds(hc.timeout),
                retries=hc.retries,
                start_period=Duration.seconds(hc.start_period),
            )

        definition = task_definition.add_container(
            container.name,
            container_name=container.name,
            image=ecs.ContainerImage.from_registry(container.image),
            essential=container.essential,
            cpu=container.cpu,
            memory_reservation_mib=container.memory_reservation_mib,
            memory_limit_mib=container.memory_limit_mib,
            logging=self.log_driver,
            entry_point=container.entry_point or None,
            command=container.command or None,
            user=container.user,
            environment=EnvironmentInterpolator.interpolate_mapping(container.environment, self.context) or None,
            secrets={
                env_name: ecs.Secret.from_secrets_manager(self._secret(ref.secret), ref.field)
                for env_name, ref in container.secrets.items()
            } or None,
            port_mappings=[
                ecs.PortMapping(
                    container_port=p.container_port,
                    host_port=p.host_port,
                    protocol=PROTOCOLS[p.protocol],
                )
                for p in container.port_mappings
            ] or None,
            health_check=health_check,
        )

        if container.mount_points:
            definition.add_mount_points(*[
                ecs.MountPoint(
                    container_path=m.container_path,
                    source_volume=m.source_volume,
                    read_only=m.read_only,
                )
                for m in container.mount_points
            ])
        return definition

    def _secret(self, name: str) -> secretsmanager.ISecret:
        """
        Imports each Secrets Manager secret once per stack.
        """
        if name not in self._secrets:
            base = "Secret" + "".join(part.capitalize() for part in name.replace("-", "/").split("/"))
            # kestra-git and kestra/git share a base id
            construct_id, suffix = base, 1
            while self.scope.node.try_find_child(construct_id) is not None:
                suffix += 1
                construct_id = f"{base}{suffix}"
            self._secrets[name] = secretsmanager.Secret.from_secret_name_v2(self.scope, construct_id, name)
        return self._secrets[name]

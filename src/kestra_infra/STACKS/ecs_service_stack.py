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
Long-running ECS service for the Kestra task, attached to the ALB and
scaled on CPU and memory utilization.
"""
from typing import Optional

from constructs import Construct
import aws_cdk as cdk
from aws_cdk import (
    Stack,
    Duration,
    RemovalPolicy,
    aws_ec2 as ec2,
    aws_ecs as ecs,
    aws_elasticloadbalancingv2 as elbv2,
)

from ..MODELS.deployment_config import ServiceSettings


class EcsServiceStack(Stack):

    def __init__(self, scope: Construct, construct_id: str, *, cluster: ecs.ICluster,
                 task_definition: ecs.TaskDefinition, target_group: elbv2.IApplicationTargetGroup,
                 ecs_service_sg: ec2.ISecurityGroup, ecs_sg: ec2.ISecurityGroup,
                 app_container: str = "KestraServer", app_port: int = 8080,
                 settings: Optional[ServiceSettings] = None, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        settings = settings or ServiceSettings()

        # ecs_service_sg admits ALB traffic, ecs_sg reaches EFS on 2049
        self.service = ecs.Ec2Service(
            self, "KestraService",
            cluster=cluster,
            task_definition=task_definition,
            desired_count=settings.desired_count,
            security_groups=[ecs_service_sg, ecs_sg],
            min_healthy_percent=0,
            max_healthy_percent=100,
            deployment_controller=ecs.DeploymentController(type=ecs.DeploymentControllerType.ECS),
            circuit_breaker=ecs.DeploymentCircuitBreaker(enable=True, rollback=True),
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS),
            placement_strategies=[
                ecs.PlacementStrategy.spread_across(ecs.BuiltInAttributes.AVAILABILITY_ZONE),
                ecs.PlacementStrategy.packed_by_cpu(),
            ],
        )

        # ECS services have no deletion protection, keep the resource on stack deletion
        self.service.node.default_child.apply_removal_policy(RemovalPolicy.RETAIN)

        # the default container is the first essential one, which is not the app
        target_group.add_target(self.service.load_balancer_target(
            container_name=app_container,
            container_port=app_port,
        ))

        # ---------------------------------------------------------------
        # Auto scaling
        # ---------------------------------------------------------------
        cooldown = Duration.seconds(settings.scale_cooldown_seconds)
        scalable_target = self.service.auto_scale_task_count(
            min_capacity=settings.min_task_count,
            max_capacity=settings.max_task_count,
        )
        scalable_target.scale_on_cpu_utilization(
            "CpuScaling",
            target_utilization_percent=settings.cpu_target_percent,
            scale_in_cooldown=cooldown,
            scale_out_cooldown=cooldown,
        )
        scalable_target.scale_on_memory_utilization(
            "MemoryScaling",
            target_utilization_percent=settings.memory_target_percent,
            scale_in_cooldown=cooldown,
            scale_out_cooldown=cooldown,
        )

        cdk.CfnOutput(self, "EcsServiceName", value=self.service.service_name)
        cdk.CfnOutput(self, "ServiceSecurityGroupId", value=ecs_service_sg.security_group_id)
        cdk.CfnOutput(self, "PlacementStrategy", value="Spread across AZs, packed by CPU")

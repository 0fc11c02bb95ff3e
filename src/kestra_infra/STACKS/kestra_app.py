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
Assembles every Kestra stack into one CDK app.
"""
from typing import Dict

import aws_cdk as cdk
from aws_cdk import Stack

from ..MODELS.deployment_config import DeploymentConfig
from ..MODELS.task_topology import TaskTopology
from .vpc_stack import VpcStack
from .ecs_cluster_stack import EcsClusterStack
from .efs_stack import EfsStack
from .s3_stack import S3Stack
from .ecs_task_stack import EcsTaskStack
from .alb_stack import AlbStack
from .ecs_service_stack import EcsServiceStack
from .waf_stack import WafStack
from .backup_stack import BackupStack
from .step_functions_stack import StepFunctionsStack


def build_app(app: cdk.App, config: DeploymentConfig, topology: TaskTopology) -> Dict[str, Stack]:
    """
    Instantiates all stacks in deployment order.

    :param app: The CDK app to add the stacks to.
    :param config: Deployment configuration, with account and region resolved.
    :param topology: Validated topology for the Kestra task.
    :return: Stacks keyed by construct id.
    """
    env = cdk.Environment(account=config.account, region=config.region)
    prefix = config.project

    vpc_stack = VpcStack(app, f"{prefix}VpcStack", vpc_name=f"{prefix}Vpc", env=env)

    cluster_stack = EcsClusterStack(
        app, f"{prefix}EcsClusterStack",
        vpc=vpc_stack.vpc,
        cluster_name=config.cluster_name,
        capacity=config.capacity,
        env=env,
    )
    cluster_stack.add_dependency(vpc_stack)

    efs_stack = EfsStack(
        app, f"{prefix}EfsStack",
        vpc=vpc_stack.vpc,
        ecs_sg=cluster_stack.ecs_sg,
        container_instance_sg=cluster_stack.container_instance_sg,
        backup_vault_name=config.backup.efs_vault_name,
        env=env,
    )
    efs_stack.add_dependency(cluster_stack)

    s3_stack = S3Stack(
        app, f"{prefix}S3Stack",
        bucket_prefix=config.bucket_prefix,
        task_role_arn=config.bucket_task_role_arn,
        env=env,
    )
    s3_stack.add_dependency(efs_stack)

    task_stack = EcsTaskStack(
        app, f"{prefix}EcsTaskStack",
        cluster=cluster_stack.cluster,
        file_system=efs_stack.file_system,
        bucket=s3_stack.bucket,
        topology=topology,
        access_points=efs_stack.access_points,
        env=env,
    )
    task_stack.add_dependency(efs_stack)
    task_stack.add_dependency(cluster_stack)
    task_stack.add_dependency(s3_stack)

    alb_stack = AlbStack(
        app, f"{prefix}AlbStack",
        vpc=vpc_stack.vpc,
        app_port=config.app_port,
        health_check_path=config.health_check_path,
        env=env,
    )
    alb_stack.add_dependency(vpc_stack)

    service_stack = EcsServiceStack(
        app, f"{prefix}EcsServiceStack",
        cluster=cluster_stack.cluster,
        task_definition=task_stack.task_definition,
        target_group=alb_stack.target_group,
        ecs_service_sg=alb_stack.ecs_service_sg,
        ecs_sg=cluster_stack.ecs_sg,
        app_container=config.app_container,
        app_port=config.app_port,
        settings=config.service,
        env=env,
    )
    service_stack.add_dependency(task_stack)
    service_stack.add_dependency(alb_stack)

    waf_stack = WafStack(
        app, f"{prefix}WafStack",
        alb=alb_stack.alb,
        settings=config.waf,
        name_prefix=config.resource_prefix,
        env=env,
    )
    waf_stack.add_dependency(alb_stack)

    backup_stack = BackupStack(
        app, f"{prefix}BackupStack",
        file_system=efs_stack.file_system,
        settings=config.backup,
        env=env,
    )
    backup_stack.add_dependency(efs_stack)

    step_functions_stack = StepFunctionsStack(app, f"{prefix}StepFunctionsStack", env=env)

    for key, value in config.tags.items():
        cdk.Tags.of(app).add(key, value)

    stacks = [vpc_stack, cluster_stack, efs_stack, s3_stack, task_stack, alb_stack,
              service_stack, waf_stack, backup_stack, step_functions_stack]
    return {stack.node.id: stack for stack in stacks}

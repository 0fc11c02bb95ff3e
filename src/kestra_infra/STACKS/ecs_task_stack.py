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
Task layer: IAM roles, log group and the EC2 task definition rendered from
the task topology.
"""
import os
from typing import Mapping, Optional

from constructs import Construct
import aws_cdk as cdk
from aws_cdk import (
    Stack,
    RemovalPolicy,
    aws_ecs as ecs,
    aws_efs as efs,
    aws_iam as iam,
    aws_logs as logs,
    aws_s3 as s3,
)

from ..MODELS.task_topology import TaskTopology
from ..RUNNERS.topology_validator import TopologyValidator
from ..CONVERTERS.to_cdk import CdkTaskDefinitionConverter


class EcsTaskStack(Stack):

    def __init__(self, scope: Construct, construct_id: str, *, cluster: ecs.ICluster,
                 file_system: efs.IFileSystem, bucket: s3.IBucket, topology: TaskTopology,
                 access_points: Optional[Mapping[str, efs.IAccessPoint]] = None, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        for warning in TopologyValidator().validate_or_raise(topology):
            print(f"Topology {topology.name}: {warning}")

        self.bucket = bucket

        # ---------------------------------------------------------------
        # Execution role: image pulls, logs, EFS and secrets
        # ---------------------------------------------------------------
        execution_role = iam.Role(
            self, "KestraTaskExecutionRole",
            assumed_by=iam.ServicePrincipal("ecs-tasks.amazonaws.com"),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name("service-role/AmazonECSTaskExecutionRolePolicy"),
            ],
        )
        execution_role.add_to_policy(iam.PolicyStatement(
            actions=[
                "ecr:GetAuthorizationToken",
                "ecr:BatchCheckLayerAvailability",
                "ecr:GetDownloadUrlForLayer",
                "ecr:BatchGetImage",
                "logs:CreateLogStream",
                "logs:PutLogEvents",
                "elasticfilesystem:ClientMount",
                "elasticfilesystem:ClientWrite",
                "elasticfilesystem:ClientRootAccess",
            ],
            resources=["*"],
        ))
        secret_names = topology.secret_names()
        if secret_names:
            execution_role.add_to_policy(iam.PolicyStatement(
                actions=["secretsmanager:GetSecretValue"],
                resources=[
                    f"arn:aws:secretsmanager:{self.region}:{self.account}:secret:{name}*"
                    for name in secret_names
                ],
            ))

        # ---------------------------------------------------------------
        # Task role: what the containers themselves may call
        # ---------------------------------------------------------------
        self.task_role = iam.Role(
            self, "KestraTaskRole",
            assumed_by=iam.ServicePrincipal("ecs-tasks.amazonaws.com"),
        )
        self.task_role.add_to_policy(iam.PolicyStatement(
            actions=["s3:GetObject", "s3:PutObject", "s3:DeleteObject", "s3:ListBucket"],
            resources=[bucket.bucket_arn, f"{bucket.bucket_arn}/*"],
        ))
        # Kestra's ECS task runner launches tasks on the same cluster
        self.task_role.add_to_policy(iam.PolicyStatement(
            actions=[
                "ecs:RunTask",
                "ecs:StopTask",
                "ecs:DescribeTasks",
                "ecs:DescribeTaskDefinition",
                "ecs:ListTasks",
            ],
            resources=[
                cluster.cluster_arn,
                f"{cluster.cluster_arn}/*",
                f"arn:aws:ecs:{self.region}:{self.account}:task-definition/*",
            ],
        ))
        self.task_role.add_to_policy(iam.PolicyStatement(
            actions=["elasticfilesystem:ClientMount", "elasticfilesystem:ClientWrite"],
            resources=[file_system.file_system_arn],
        ))
        self.task_role.add_to_policy(iam.PolicyStatement(
            actions=["logs:CreateLogStream", "logs:PutLogEvents", "cloudwatch:PutMetricData"],
            resources=["*"],
        ))

        log_group = logs.LogGroup(
            self, "KestraLogs",
            log_group_name=topology.log_group_name,
            removal_policy=RemovalPolicy.DESTROY,
        )
        log_driver = ecs.LogDriver.aws_logs(log_group=log_group, stream_prefix=topology.log_stream_prefix)

        self.converter = CdkTaskDefinitionConverter(
            self, topology, file_system, log_driver,
            context={
                **os.environ,
                "STORAGE_BUCKET": bucket.bucket_name,
                "AWS_REGION": self.region,
                "AWS_ACCOUNT_ID": self.account,
            },
            access_points=access_points,
        )
        self.task_definition = self.converter.convert("KestraTaskDef", self.task_role, execution_role)

        cdk.CfnOutput(self, "TaskDefinitionArn", value=self.task_definition.task_definition_arn)
        cdk.CfnOutput(self, "TaskRoleArn", value=self.task_role.role_arn)

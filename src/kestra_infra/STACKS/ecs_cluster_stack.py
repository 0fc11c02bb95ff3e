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
ECS cluster layer.

Resources:
  - ECS cluster
  - Task security group with egress limited to DNS, HTTPS and NFS
  - Container instance security group
  - EC2 Auto Scaling group registered as the cluster's capacity provider
"""
from typing import Optional

from constructs import Construct
import aws_cdk as cdk
from aws_cdk import (
    Stack,
    aws_autoscaling as autoscaling,
    aws_ec2 as ec2,
    aws_ecs as ecs,
    aws_iam as iam,
)

from ..MODELS.deployment_config import CapacitySettings


class EcsClusterStack(Stack):

    def __init__(self, scope: Construct, construct_id: str, *, vpc: ec2.IVpc,
                 cluster_name: str = "kestra-cluster",
                 capacity: Optional[CapacitySettings] = None, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)
        capacity = capacity or CapacitySettings()

        self.cluster = ecs.Cluster(self, "KestraEcsCluster", vpc=vpc, cluster_name=cluster_name)

        # ---------------------------------------------------------------
        # Task security group (ALB ingress lives on the service SG)
        # ---------------------------------------------------------------
        self.ecs_sg = ec2.SecurityGroup(
            self, "EcsTasksSg",
            vpc=vpc,
            description="Security group for ECS tasks running Kestra",
            allow_all_outbound=False,
        )
        self.ecs_sg.add_egress_rule(
            ec2.Peer.ipv4(vpc.vpc_cidr_block), ec2.Port.udp(53),
            "Allow DNS resolution via VPC DNS resolver",
        )
        self.ecs_sg.add_egress_rule(
            ec2.Peer.any_ipv4(), ec2.Port.tcp(443),
            "Allow outbound HTTPS for AWS APIs, S3, and git clone",
        )
        self.ecs_sg.add_egress_rule(
            ec2.Peer.ipv4(vpc.vpc_cidr_block), ec2.Port.tcp(2049),
            "Allow NFS traffic to EFS for shared storage",
        )

        # ---------------------------------------------------------------
        # Container instances mount EFS on behalf of tasks
        # ---------------------------------------------------------------
        self.container_instance_sg = ec2.SecurityGroup(
            self, "ContainerInstanceSg",
            vpc=vpc,
            description="Security group for ECS container instances",
            allow_all_outbound=True,
        )

        # desired_capacity is omitted so deployments never reset the group size
        asg = autoscaling.AutoScalingGroup(
            self, "KestraAsg",
            vpc=vpc,
            instance_type=ec2.InstanceType(capacity.instance_type),
            machine_image=ecs.EcsOptimizedImage.amazon_linux2(),
            min_capacity=capacity.min_capacity,
            max_capacity=capacity.max_capacity,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS),
            security_group=self.container_instance_sg,
        )
        asg.role.add_managed_policy(
            iam.ManagedPolicy.from_aws_managed_policy_name("service-role/AmazonEC2ContainerServiceforEC2Role")
        )
        asg.role.add_managed_policy(
            iam.ManagedPolicy.from_aws_managed_policy_name("AmazonSSMManagedInstanceCore")
        )

        efs_policy = iam.Policy(
            self, "ContainerInstanceEfsPolicy",
            statements=[
                iam.PolicyStatement(
                    actions=[
                        "elasticfilesystem:ClientMount",
                        "elasticfilesystem:ClientWrite",
                        "elasticfilesystem:ClientRootAccess",
                    ],
                    resources=["*"],
                ),
            ],
        )
        efs_policy.attach_to_role(asg.role)

        capacity_provider = ecs.AsgCapacityProvider(
            self, "KestraCapacityProvider",
            auto_scaling_group=asg,
        )
        self.cluster.add_asg_capacity_provider(capacity_provider)

        cdk.CfnOutput(self, "ClusterName", value=self.cluster.cluster_name)
        cdk.CfnOutput(self, "AutoScalingGroupName", value=asg.auto_scaling_group_name)
        cdk.CfnOutput(self, "EcsTasksSecurityGroupId", value=self.ecs_sg.security_group_id)

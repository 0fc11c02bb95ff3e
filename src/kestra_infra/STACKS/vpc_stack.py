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
Network layer: a two-AZ VPC with public and private subnets and a single NAT gateway.
"""
from constructs import Construct
import aws_cdk as cdk
from aws_cdk import (
    Stack,
    aws_ec2 as ec2,
)


class VpcStack(Stack):

    def __init__(self, scope: Construct, construct_id: str, *, vpc_name: str = "KestraVpc", **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # DNS hostnames are required for tasks to resolve EFS mount target names
        self.vpc = ec2.Vpc(
            self, "KestraVpc",
            vpc_name=vpc_name,
            max_azs=2,
            nat_gateways=1,
            subnet_configuration=[
                ec2.SubnetConfiguration(name="Public", subnet_type=ec2.SubnetType.PUBLIC, cidr_mask=24),
                ec2.SubnetConfiguration(name="Private", subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS, cidr_mask=24),
            ],
            enable_dns_hostnames=True,
            enable_dns_support=True,
        )

        cdk.CfnOutput(self, "VpcId", value=self.vpc.vpc_id)
        cdk.CfnOutput(self, "PublicSubnets",
                      value=", ".join(s.subnet_id for s in self.vpc.public_subnets))
        cdk.CfnOutput(self, "PrivateSubnets",
                      value=", ".join(s.subnet_id for s in self.vpc.private_subnets))

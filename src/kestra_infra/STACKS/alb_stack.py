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
Application load balancer in front of the Kestra UI and API.
"""
from constructs import Construct
import aws_cdk as cdk
from aws_cdk import (
    Stack,
    Duration,
    aws_ec2 as ec2,
    aws_elasticloadbalancingv2 as elbv2,
)


class AlbStack(Stack):

    def __init__(self, scope: Construct, construct_id: str, *, vpc: ec2.IVpc,
                 app_port: int = 8080, health_check_path: str = "/api/v1/health", **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # ---------------------------------------------------------------
        # Security groups
        # ---------------------------------------------------------------
        self.alb_sg = ec2.SecurityGroup(
            self, "AlbSecurityGroup",
            vpc=vpc,
            description="Allow HTTP traffic to ALB",
            allow_all_outbound=True,
        )
        self.alb_sg.add_ingress_rule(ec2.Peer.any_ipv4(), ec2.Port.tcp(80), "Allow inbound HTTP from the internet")

        # Attached to the service by EcsServiceStack
        self.ecs_service_sg = ec2.SecurityGroup(
            self, "EcsServiceSecurityGroup",
            vpc=vpc,
            description=f"Allow ALB to reach the Kestra service on port {app_port}",
            allow_all_outbound=True,
        )
        self.ecs_service_sg.add_ingress_rule(self.alb_sg, ec2.Port.tcp(app_port), "Allow ALB to Kestra task")

        # ---------------------------------------------------------------
        # Load balancer, target group and listener
        # ---------------------------------------------------------------
        self.alb = elbv2.ApplicationLoadBalancer(
            self, "KestraALB",
            vpc=vpc,
            internet_facing=True,
            security_group=self.alb_sg,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PUBLIC),
        )

        self.target_group = elbv2.ApplicationTargetGroup(
            self, "KestraTargetGroup",
            vpc=vpc,
            port=app_port,
            protocol=elbv2.ApplicationProtocol.HTTP,
            target_type=elbv2.TargetType.IP,
            health_check=elbv2.HealthCheck(
                path=health_check_path,
                interval=Duration.seconds(30),
                timeout=Duration.seconds(5),
                healthy_threshold_count=2,
                unhealthy_threshold_count=5,
            ),
            deregistration_delay=Duration.seconds(15),
            stickiness_cookie_duration=Duration.minutes(5),
        )

        self.listener = self.alb.add_listener(
            "HttpListener",
            port=80,
            open=True,
            default_target_groups=[self.target_group],
        )

        cdk.CfnOutput(self, "AlbDnsName", value=self.alb.load_balancer_dns_name)
        cdk.CfnOutput(self, "AlbSecurityGroupId", value=self.alb_sg.security_group_id)
        cdk.CfnOutput(self, "EcsServiceSecurityGroupId", value=self.ecs_service_sg.security_group_id)

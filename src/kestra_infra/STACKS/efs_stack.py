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
Shared storage layer: the EFS file system every task volume lives on.

Resources:
  - EFS security group (NFS from tasks and container instances)
  - Encrypted EFS file system in the private subnets
  - Access points for the Postgres and Kestra data directories
  - Optional daily backup plan into an existing vault
"""
from typing import Dict, Optional

from constructs import Construct
import aws_cdk as cdk
from aws_cdk import (
    Stack,
    Duration,
    RemovalPolicy,
    aws_backup as backup,
    aws_ec2 as ec2,
    aws_efs as efs,
)

# name -> (path, uid/gid)
ACCESS_POINTS = {
    "postgres": ("/postgres-data", "999"),
    "kestra-data": ("/kestra-data", "0"),
}


class EfsStack(Stack):

    def __init__(self, scope: Construct, construct_id: str, *, vpc: ec2.IVpc,
                 ecs_sg: ec2.ISecurityGroup,
                 container_instance_sg: Optional[ec2.ISecurityGroup] = None,
                 backup_vault_name: Optional[str] = None, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        efs_sg = ec2.SecurityGroup(
            self, "EfsSecurityGroup",
            vpc=vpc,
            description="Allow NFS access from ECS tasks and container instances",
            allow_all_outbound=True,
        )
        efs_sg.add_ingress_rule(ecs_sg, ec2.Port.tcp(2049), "Allow NFS from ECS tasks")
        if container_instance_sg is not None:
            efs_sg.add_ingress_rule(container_instance_sg, ec2.Port.tcp(2049),
                                    "Allow NFS from container instances")

        self.file_system = efs.FileSystem(
            self, "KestraEfs",
            vpc=vpc,
            security_group=efs_sg,
            removal_policy=RemovalPolicy.DESTROY,
            lifecycle_policy=efs.LifecyclePolicy.AFTER_14_DAYS,
            performance_mode=efs.PerformanceMode.GENERAL_PURPOSE,
            throughput_mode=efs.ThroughputMode.BURSTING,
            encrypted=True,
            file_system_name="kestra-gitsync-efs",
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS),
        )

        self.access_points: Dict[str, efs.AccessPoint] = {}
        for name, (path, owner) in ACCESS_POINTS.items():
            ap_id = "".join(part.capitalize() for part in name.split("-")) + "AccessPoint"
            self.access_points[name] = efs.AccessPoint(
                self, ap_id,
                file_system=self.file_system,
                path=path,
                create_acl=efs.Acl(owner_gid=owner, owner_uid=owner, permissions="755"),
                posix_user=efs.PosixUser(gid=owner, uid=owner),
            )
            cdk.CfnOutput(self, ap_id + "Id", value=self.access_points[name].access_point_id)

        if backup_vault_name:
            vault = backup.BackupVault.from_backup_vault_name(self, "KestraEfsBackupVault", backup_vault_name)
            plan = backup.BackupPlan(
                self, "KestraEfsBackupPlan",
                backup_plan_name=f"{backup_vault_name}-efs-daily",
                backup_vault=vault,
            )
            plan.add_rule(backup.BackupPlanRule(
                rule_name="DailyBackup",
                enable_continuous_backup=True,
                delete_after=Duration.days(30),
            ))
            plan.add_selection(
                "EfsSelection",
                resources=[backup.BackupResource.from_efs_file_system(self.file_system)],
            )

        cdk.CfnOutput(self, "EfsId", value=self.file_system.file_system_id)
        cdk.CfnOutput(self, "EfsSgId", value=efs_sg.security_group_id)

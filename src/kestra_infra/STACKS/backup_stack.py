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
Daily AWS Backup plan for the shared EFS file system.
"""
from typing import Optional

from constructs import Construct
from aws_cdk import (
    Stack,
    Duration,
    aws_backup as backup,
    aws_efs as efs,
    aws_events as events,
    aws_iam as iam,
)

from ..MODELS.deployment_config import BackupSettings


class BackupStack(Stack):

    def __init__(self, scope: Construct, construct_id: str, *, file_system: efs.IFileSystem,
                 settings: Optional[BackupSettings] = None, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        settings = settings or BackupSettings()

        self.vault = backup.BackupVault(self, "KestraBackupVault", backup_vault_name=settings.vault_name)

        self.plan = backup.BackupPlan(
            self, "KestraBackupPlan",
            backup_plan_name=settings.plan_name,
            backup_vault=self.vault,
        )
        # schedule is in UTC
        self.plan.add_rule(backup.BackupPlanRule(
            rule_name="DailyBackup",
            schedule_expression=events.Schedule.cron(minute="0", hour=str(settings.schedule_hour)),
            delete_after=Duration.days(settings.retention_days),
        ))

        backup_role = iam.Role(
            self, "KestraBackupRole",
            assumed_by=iam.ServicePrincipal("backup.amazonaws.com"),
        )
        backup_role.add_managed_policy(
            iam.ManagedPolicy.from_aws_managed_policy_name("service-role/AWSBackupServiceRolePolicyForBackup")
        )
        backup_role.add_managed_policy(
            iam.ManagedPolicy.from_aws_managed_policy_name("service-role/AWSBackupServiceRolePolicyForRestores")
        )

        self.plan.add_selection(
            "EfsBackupSelection",
            resources=[backup.BackupResource.from_arn(file_system.file_system_arn)],
            role=backup_role,
        )

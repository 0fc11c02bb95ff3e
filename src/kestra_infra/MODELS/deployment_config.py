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
Models for the deployment configuration read from deploy.yml.
"""
from typing import List, Dict, Optional
from pydantic import BaseModel, Field, field_validator


class WafSettings(BaseModel):
    """
    Web ACL settings for the load balancer.
    """
    webhook_path: str = "/webhook/jira"
    rate_limit_per_5min: int = Field(default=300, ge=10)
    allow_countries: List[str] = []
    ip_allow_list: List[str] = []
    ip_block_list: List[str] = []


class CapacitySettings(BaseModel):
    """
    EC2 capacity backing the ECS cluster.
    """
    instance_type: str = "t3.large"
    min_capacity: int = 1
    max_capacity: int = 3


class ServiceSettings(BaseModel):
    """
    ECS service deployment and scaling settings.
    """
    desired_count: int = 0
    min_task_count: int = 1
    max_task_count: int = 5
    cpu_target_percent: int = 60
    memory_target_percent: int = 70
    scale_cooldown_seconds: int = 60


class BackupSettings(BaseModel):
    vault_name: str = "KestraBackupVault"
    plan_name: str = "KestraDailyBackupPlan"
    schedule_hour: int = Field(default=2, ge=0, le=23)
    retention_days: int = 30
    # Imported vault for the EFS stack's own plan; unset disables that plan.
    efs_vault_name: Optional[str] = None


class DeploymentConfig(BaseModel):
    """
    Everything the CDK app needs beyond the task topology.
    """
    account: Optional[str] = None
    region: str = "eu-central-1"

    project: str = "Kestra"
    environment: str = "Production"
    owner: Optional[str] = None

    topology_file: str = "topologies/kestra-task.yml"

    cluster_name: str = "kestra-cluster"
    capacity: CapacitySettings = Field(default_factory=CapacitySettings)
    service: ServiceSettings = Field(default_factory=ServiceSettings)

    app_container: str = "KestraServer"
    app_port: int = 8080
    health_check_path: str = "/api/v1/health"

    bucket_prefix: str = "kestra-internal-storage"
    bucket_task_role_arn: Optional[str] = None

    waf: WafSettings = Field(default_factory=WafSettings)
    backup: BackupSettings = Field(default_factory=BackupSettings)

    @field_validator("account", mode="before")
    @classmethod
    def _account_as_str(cls, v):
        # YAML reads a bare 12-digit account id as an int
        return str(v) if isinstance(v, int) else v

    @property
    def tags(self) -> Dict[str, str]:
        """
        Tags applied to every resource in the app.
        """
        tags = {
            "Project": self.project,
            "Environment": self.environment,
            "ManagedBy": "AWS CDK",
        }
        if self.owner:
            tags["Owner"] = self.owner
        return tags

    @property
    def resource_prefix(self) -> str:
        return self.project.lower()

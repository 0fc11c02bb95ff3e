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
Object storage layer: the bucket Kestra uses as internal storage.
"""
from typing import Optional

from constructs import Construct
import aws_cdk as cdk
from aws_cdk import (
    Stack,
    Duration,
    RemovalPolicy,
    aws_iam as iam,
    aws_s3 as s3,
)


class S3Stack(Stack):

    def __init__(self, scope: Construct, construct_id: str, *,
                 bucket_prefix: str = "kestra-internal-storage",
                 task_role_arn: Optional[str] = None, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.bucket = s3.Bucket(
            self, "KestraInternalStorage",
            bucket_name=f"{bucket_prefix}-{self.account}-{self.region}",
            versioned=True,
            encryption=s3.BucketEncryption.S3_MANAGED,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            enforce_ssl=True,
            removal_policy=RemovalPolicy.DESTROY,
            auto_delete_objects=True,
            lifecycle_rules=[
                s3.LifecycleRule(
                    id="ExpireOldObjects",
                    expiration=Duration.days(31),
                    enabled=True,
                ),
                s3.LifecycleRule(
                    id="TransitionToIA",
                    transitions=[
                        s3.Transition(
                            storage_class=s3.StorageClass.INFREQUENT_ACCESS,
                            transition_after=Duration.days(60),
                        ),
                    ],
                    enabled=True,
                ),
            ],
        )

        if task_role_arn:
            self.bucket.add_to_resource_policy(
                iam.PolicyStatement(
                    sid="AllowEcsTaskRoleAccess",
                    actions=["s3:*"],
                    principals=[iam.ArnPrincipal(task_role_arn)],
                    resources=[self.bucket.bucket_arn, f"{self.bucket.bucket_arn}/*"],
                )
            )

        cdk.CfnOutput(self, "BucketName", value=self.bucket.bucket_name)
        cdk.CfnOutput(self, "BucketArn", value=self.bucket.bucket_arn)

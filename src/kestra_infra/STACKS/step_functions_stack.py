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
Step Functions workflows for Jira events, each backed by one Lambda
function from the HANDLERS package.
"""
import os

from constructs import Construct
import aws_cdk as cdk
from aws_cdk import (
    Stack,
    Duration,
    aws_iam as iam,
    aws_lambda as lambda_,
    aws_stepfunctions as sfn,
    aws_stepfunctions_tasks as tasks,
)

HANDLERS_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "HANDLERS")


class StepFunctionsStack(Stack):

    def __init__(self, scope: Construct, construct_id: str, *, log_level: str = "INFO", **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        lambda_role = iam.Role(
            self, "WorkflowLambdaRole",
            assumed_by=iam.ServicePrincipal("lambda.amazonaws.com"),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name("service-role/AWSLambdaBasicExecutionRole"),
            ],
        )
        code = lambda_.Code.from_asset(HANDLERS_DIR, exclude=["__pycache__", "*.pyc"])

        issue_fn = self._handler(
            "IssueCreatedHandler", "issue_created.handler", code, lambda_role, log_level
        )
        comment_fn = self._handler(
            "CommentCreatedHandler", "comment_created.handler", code, lambda_role, log_level
        )

        self.issue_created_state_machine = self._workflow("IssueCreatedWorkflow", "ProcessIssueCreated", issue_fn)
        self.comment_created_state_machine = self._workflow(
            "CommentCreatedWorkflow", "ProcessCommentCreated", comment_fn
        )

        cdk.CfnOutput(
            self, "IssueCreatedStepFnArn",
            value=self.issue_created_state_machine.state_machine_arn,
            export_name="IssueCreatedStepFnArn",
        )
        cdk.CfnOutput(
            self, "CommentCreatedStepFnArn",
            value=self.comment_created_state_machine.state_machine_arn,
            export_name="CommentCreatedStepFnArn",
        )

    def _handler(self, construct_id: str, handler: str, code: lambda_.Code,
                 role: iam.IRole, log_level: str) -> lambda_.Function:
        return lambda_.Function(
            self, construct_id,
            runtime=lambda_.Runtime.PYTHON_3_12,
            handler=handler,
            code=code,
            role=role,
            timeout=Duration.seconds(60),
            environment={"LOG_LEVEL": log_level},
        )

    def _workflow(self, construct_id: str, task_id: str, fn: lambda_.IFunction) -> sfn.StateMachine:
        """
        A STANDARD state machine with a single task that returns only the
        Lambda payload.
        """
        invoke = tasks.LambdaInvoke(self, task_id, lambda_function=fn, output_path="$.Payload")
        return sfn.StateMachine(
            self, construct_id,
            definition_body=sfn.DefinitionBody.from_chainable(invoke),
            timeout=Duration.minutes(5),
            state_machine_type=sfn.StateMachineType.STANDARD,
        )

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
Regional web ACL protecting the load balancer, with rate limiting on the
webhook path, optional IP and geo filters and the AWS managed rule groups.
"""
from typing import List, Optional

from constructs import Construct
import aws_cdk as cdk
from aws_cdk import (
    Stack,
    aws_elasticloadbalancingv2 as elbv2,
    aws_iam as iam,
    aws_logs as logs,
    aws_wafv2 as wafv2,
)

from ..MODELS.deployment_config import WafSettings

# (rule group name, priority)
MANAGED_RULE_GROUPS = [
    ("AWSManagedRulesCommonRuleSet", 10),
    ("AWSManagedRulesKnownBadInputsRuleSet", 11),
    ("AWSManagedRulesAmazonIpReputationList", 12),
    ("AWSManagedRulesAnonymousIpList", 13),
    ("AWSManagedRulesSQLiRuleSet", 14),
]


def _visibility(metric_name: str) -> wafv2.CfnWebACL.VisibilityConfigProperty:
    return wafv2.CfnWebACL.VisibilityConfigProperty(
        metric_name=metric_name,
        cloud_watch_metrics_enabled=True,
        sampled_requests_enabled=True,
    )


class WafStack(Stack):

    def __init__(self, scope: Construct, construct_id: str, *, alb: elbv2.IApplicationLoadBalancer,
                 settings: Optional[WafSettings] = None, name_prefix: str = "kestra", **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        settings = settings or WafSettings()
        rules: List[wafv2.CfnWebACL.RuleProperty] = []

        # ---------------------------------------------------------------
        # IP allow and block lists
        # ---------------------------------------------------------------
        if settings.ip_allow_list:
            allow_ip_set = wafv2.CfnIPSet(
                self, "WafAllowIpSet",
                addresses=settings.ip_allow_list,
                ip_address_version="IPV4",
                scope="REGIONAL",
                name=f"{name_prefix}-allow-ips",
                description="IPs allowed to bypass other rules",
            )
            rules.append(wafv2.CfnWebACL.RuleProperty(
                name="AllowListedIPs",
                priority=0,
                action=wafv2.CfnWebACL.RuleActionProperty(allow={}),
                statement=wafv2.CfnWebACL.StatementProperty(
                    ip_set_reference_statement=wafv2.CfnWebACL.IPSetReferenceStatementProperty(
                        arn=allow_ip_set.attr_arn,
                    ),
                ),
                visibility_config=_visibility("AllowListedIPs"),
            ))

        if settings.ip_block_list:
            block_ip_set = wafv2.CfnIPSet(
                self, "WafBlockIpSet",
                addresses=settings.ip_block_list,
                ip_address_version="IPV4",
                scope="REGIONAL",
                name=f"{name_prefix}-block-ips",
                description="IPs explicitly blocked",
            )
            rules.append(wafv2.CfnWebACL.RuleProperty(
                name="BlockedIPs",
                priority=1,
                action=wafv2.CfnWebACL.RuleActionProperty(block={}),
                statement=wafv2.CfnWebACL.StatementProperty(
                    ip_set_reference_statement=wafv2.CfnWebACL.IPSetReferenceStatementProperty(
                        arn=block_ip_set.attr_arn,
                    ),
                ),
                visibility_config=_visibility("BlockedIPs"),
            ))

        # ---------------------------------------------------------------
        # Rate limit on the webhook path, per source IP
        # ---------------------------------------------------------------
        rules.append(wafv2.CfnWebACL.RuleProperty(
            name="RateLimitWebhook",
            priority=2,
            action=wafv2.CfnWebACL.RuleActionProperty(block={}),
            statement=wafv2.CfnWebACL.StatementProperty(
                rate_based_statement=wafv2.CfnWebACL.RateBasedStatementProperty(
                    limit=settings.rate_limit_per_5min,
                    aggregate_key_type="IP",
                    scope_down_statement=wafv2.CfnWebACL.StatementProperty(
                        byte_match_statement=wafv2.CfnWebACL.ByteMatchStatementProperty(
                            field_to_match=wafv2.CfnWebACL.FieldToMatchProperty(uri_path={}),
                            positional_constraint="STARTS_WITH",
                            search_string=settings.webhook_path,
                            text_transformations=[
                                wafv2.CfnWebACL.TextTransformationProperty(priority=0, type="NONE"),
                            ],
                        ),
                    ),
                ),
            ),
            visibility_config=_visibility("RateLimitWebhook"),
        ))

        # Block everything outside the allowed countries
        if settings.allow_countries:
            rules.append(wafv2.CfnWebACL.RuleProperty(
                name="GeoAllowOnly",
                priority=3,
                action=wafv2.CfnWebACL.RuleActionProperty(block={}),
                statement=wafv2.CfnWebACL.StatementProperty(
                    not_statement=wafv2.CfnWebACL.NotStatementProperty(
                        statement=wafv2.CfnWebACL.StatementProperty(
                            geo_match_statement=wafv2.CfnWebACL.GeoMatchStatementProperty(
                                country_codes=settings.allow_countries,
                            ),
                        ),
                    ),
                ),
                visibility_config=_visibility("GeoAllowOnly"),
            ))

        for group_name, priority in MANAGED_RULE_GROUPS:
            rules.append(wafv2.CfnWebACL.RuleProperty(
                name=group_name,
                priority=priority,
                override_action=wafv2.CfnWebACL.OverrideActionProperty(none={}),
                statement=wafv2.CfnWebACL.StatementProperty(
                    managed_rule_group_statement=wafv2.CfnWebACL.ManagedRuleGroupStatementProperty(
                        name=group_name,
                        vendor_name="AWS",
                    ),
                ),
                visibility_config=_visibility(group_name),
            ))

        # ---------------------------------------------------------------
        # Web ACL and association
        # ---------------------------------------------------------------
        self.web_acl = wafv2.CfnWebACL(
            self, "KestraWebAcl",
            name=f"{name_prefix}-alb-web-acl",
            scope="REGIONAL",
            default_action=wafv2.CfnWebACL.DefaultActionProperty(allow={}),
            visibility_config=_visibility(f"{name_prefix}WebAcl"),
            rules=rules,
        )

        wafv2.CfnWebACLAssociation(
            self, "KestraWebAclAssociation",
            resource_arn=alb.load_balancer_arn,
            web_acl_arn=self.web_acl.attr_arn,
        )

        # ---------------------------------------------------------------
        # Logging; WAF only delivers to log groups named aws-waf-logs-*
        # ---------------------------------------------------------------
        log_group = logs.LogGroup(
            self, "WafLogGroup",
            log_group_name=f"aws-waf-logs-{name_prefix}",
            retention=logs.RetentionDays.ONE_MONTH,
        )
        log_group.add_to_resource_policy(iam.PolicyStatement(
            effect=iam.Effect.ALLOW,
            principals=[iam.ServicePrincipal("waf.amazonaws.com")],
            actions=[
                "logs:CreateLogStream",
                "logs:PutLogEvents",
                "logs:CreateLogGroup",
                "logs:DescribeLogStreams",
            ],
            resources=[log_group.log_group_arn, f"{log_group.log_group_arn}:*"],
            conditions={"StringEquals": {"aws:SourceAccount": self.account}},
        ))

        wafv2.CfnLoggingConfiguration(
            self, "WafLogging",
            resource_arn=self.web_acl.attr_arn,
            log_destination_configs=[log_group.log_group_arn],
        )

        cdk.CfnOutput(self, "WebAclArn", value=self.web_acl.attr_arn)
        cdk.CfnOutput(self, "WafLogGroupName", value=log_group.log_group_name)

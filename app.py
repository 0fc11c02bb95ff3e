#!/usr/bin/env python3
"""
AWS CDK entry point.

Provisions:
  - VPC with public/private subnets
  - ECS cluster on EC2 capacity
  - EFS file system with access points and backups
  - S3 bucket for Kestra internal storage
  - ECS task definition built from the task topology, and its service
  - Application Load Balancer behind a WAF web ACL
  - Step Functions workflows for Jira events
"""
import os

import aws_cdk as cdk

from kestra_infra.PARSERS.config_parser import ConfigParser
from kestra_infra.PARSERS.topology_parser import TopologyParser
from kestra_infra.STACKS.kestra_app import build_app

app = cdk.App()

config_file = app.node.try_get_context("config") or "deploy.yml"
config = ConfigParser().parse(config_file)
config = ConfigParser.resolve_environment(
    config,
    context_account=app.node.try_get_context("account"),
    context_region=app.node.try_get_context("region"),
)

topology_file = app.node.try_get_context("topology") or config.topology_file
topology = TopologyParser().parse(os.path.join(os.path.dirname(os.path.abspath(config_file)), topology_file))

build_app(app, config, topology)

app.synth()

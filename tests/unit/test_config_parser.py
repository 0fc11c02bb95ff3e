"""
Unit tests for deploy.yml parsing.
"""
import os
import pytest
from pydantic import ValidationError
from kestra_infra.PARSERS.config_parser import ConfigParser
from kestra_infra.MODELS.deployment_config import DeploymentConfig


def test_defaults():
    config = ConfigParser(context={}).parse_from_string("")
    assert config.region == 'eu-central-1'
    assert config.project == 'Kestra'
    assert config.waf.webhook_path == '/webhook/jira'
    assert config.service.desired_count == 0
    assert config.backup.schedule_hour == 2
    assert config.tags == {'Project': 'Kestra', 'Environment': 'Production', 'ManagedBy': 'AWS CDK'}


def test_placeholders_and_empty_values():
    content = """
account: ${AWS_ACCOUNT_ID:-}
region: ${AWS_REGION:-eu-central-1}
owner: ${OWNER:-}
waf:
  rate_limit_per_5min: ${RATE_LIMIT:-300}
"""
    config = ConfigParser(context={'AWS_REGION': 'eu-west-1', 'RATE_LIMIT': '120'}).parse_from_string(content)
    assert config.account is None
    assert config.owner is None
    assert config.region == 'eu-west-1'
    assert config.waf.rate_limit_per_5min == 120


def test_numeric_account_is_kept_as_string():
    config = ConfigParser(context={}).parse_from_string("account: 123456789012\nowner: platform\n")
    assert config.account == '123456789012'
    assert config.tags['Owner'] == 'platform'


def test_unset_placeholder_raises():
    with pytest.raises(KeyError):
        ConfigParser(context={}).parse_from_string("account: ${AWS_ACCOUNT_ID}\n")


def test_invalid_values():
    with pytest.raises(ValidationError):
        ConfigParser(context={}).parse_from_string("waf:\n  rate_limit_per_5min: 1\n")
    with pytest.raises(ValueError):
        ConfigParser(context={}).parse_from_string("- not\n- a mapping\n")


def test_env_file_next_to_config(tmp_path):
    (tmp_path / "deploy.yml").write_text("owner: ${OWNER}\nenvironment: ${STAGE:-Production}\n")
    (tmp_path / ".env").write_text("OWNER=data-team\nSTAGE=Staging\n")

    config = ConfigParser(context={'STAGE': 'Test'}).parse(str(tmp_path / "deploy.yml"))
    assert config.owner == 'data-team'
    # process environment wins over .env
    assert config.environment == 'Test'


def test_resolve_environment(monkeypatch):
    monkeypatch.setenv('CDK_DEFAULT_ACCOUNT', '111111111111')
    monkeypatch.setenv('CDK_DEFAULT_REGION', 'us-east-1')

    resolved = ConfigParser.resolve_environment(DeploymentConfig())
    assert resolved.account == '111111111111'
    assert resolved.region == 'eu-central-1'

    resolved = ConfigParser.resolve_environment(
        DeploymentConfig(account='222222222222'), context_account='333333333333', context_region='ap-south-1'
    )
    assert resolved.account == '222222222222'
    assert resolved.region == 'ap-south-1'


def test_shipped_deploy_file(monkeypatch):
    for var in ('AWS_ACCOUNT_ID', 'AWS_REGION', 'DEPLOY_ENVIRONMENT', 'OWNER', 'KESTRA_TOPOLOGY',
                'BUCKET_TASK_ROLE_ARN'):
        monkeypatch.delenv(var, raising=False)
    repo_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    config = ConfigParser().parse(os.path.join(repo_root, 'deploy.yml'))
    assert config.topology_file == 'topologies/kestra-task.yml'
    assert config.account is None

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
Parser for deploy.yml deployment configuration files.
"""
import os
import yaml
from typing import Dict, Optional
from dotenv import dotenv_values
from ..MODELS.deployment_config import DeploymentConfig
from ..UTILS.string_interpolation import EnvironmentInterpolator


class ConfigParser:
    """
    Parser for deployment configuration.

    Placeholders are interpolated against the process environment, layered
    over a .env file that sits next to the configuration file.
    """
    def __init__(self, context: Optional[Dict[str, str]] = None):
        """
        Initializes the parser with an optional interpolation context.

        :param context: Variables for interpolation; defaults to os.environ.
        """
        self.context = context if context is not None else dict(os.environ)

    def parse(self, config_path: str) -> DeploymentConfig:
        """
        Parses a configuration file from a path.

        :param config_path: Path to deploy.yml.
        :return: Parsed configuration.
        """
        with open(config_path, 'r') as f:
            content = f.read()

        env_file = os.path.join(os.path.dirname(os.path.abspath(config_path)), '.env')
        context = {}
        if os.path.exists(env_file):
            context.update({k: v for k, v in dotenv_values(env_file).items() if v is not None})
        context.update(self.context)
        return self.parse_from_string(content, context)

    def parse_from_string(self, content: str, context: Optional[Dict[str, str]] = None) -> DeploymentConfig:
        """
        Parses configuration from a YAML string.

        :param content: YAML content.
        :param context: Interpolation context; defaults to the parser's context.
        :return: Parsed configuration.
        :raises KeyError: If a ${VAR} placeholder has no value and no default.
        """
        content = EnvironmentInterpolator.interpolate(content, self.context if context is None else context)
        data = yaml.safe_load(content) or {}
        if not isinstance(data, dict):
            raise ValueError("Deployment configuration must be a mapping")
        # empty ${VAR:-} placeholders mean "not set"
        data = {k: v for k, v in data.items() if v not in ('', None)}
        return DeploymentConfig.model_validate(data)

    @staticmethod
    def resolve_environment(config: DeploymentConfig,
                            context_account: Optional[str] = None,
                            context_region: Optional[str] = None) -> DeploymentConfig:
        """
        Fills a missing account from CDK context, then CDK_DEFAULT_ACCOUNT.
        A region given in CDK context overrides the configured one.

        :param config: Parsed configuration.
        :param context_account: Value of the 'account' CDK context key.
        :param context_region: Value of the 'region' CDK context key.
        :return: A copy of the configuration with account and region resolved.
        """
        account = config.account or context_account or os.environ.get('CDK_DEFAULT_ACCOUNT')
        region = context_region or config.region or os.environ.get('CDK_DEFAULT_REGION')
        return config.model_copy(update={'account': account, 'region': region})

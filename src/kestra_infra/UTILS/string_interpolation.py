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
Utilities for interpolating ${VAR} placeholders in configuration values.
"""
import re
from typing import Dict, Mapping

_PLACEHOLDER = re.compile(r'\$\{([^}:]+)(?::(-|\+)([^}]*))?\}')


class EnvironmentInterpolator:
    """
    Interpolates variables in strings.
    Supports ${VAR}, ${VAR:-default}, and ${VAR:+value}.
    """
    @staticmethod
    def interpolate(template: str, context: Mapping[str, str]) -> str:
        """
        Interpolates placeholders in the template string using the provided context.

        :param template: The string containing ${VAR} placeholders.
        :param context: Values available for substitution.
        :return: The interpolated string.
        :raises KeyError: If a variable is not found and no default is provided.
        """
        def replace(match):
            var_name = match.group(1)
            modifier = match.group(2)
            alt_value = match.group(3)

            value = context.get(var_name)

            if modifier == '-':
                return value if value else alt_value
            if modifier == '+':
                return alt_value if value else ''
            if value is None:
                raise KeyError(f"Variable {var_name} not found in context")
            return value

        return _PLACEHOLDER.sub(replace, template)

    @classmethod
    def interpolate_mapping(cls, values: Mapping[str, str], context: Mapping[str, str]) -> Dict[str, str]:
        """
        Interpolates every value of a mapping, keeping its keys and order.

        :param values: Mapping whose values may hold placeholders.
        :param context: Values available for substitution.
        :return: A new dictionary with interpolated values.
        """
        return {key: cls.interpolate(str(value), context) for key, value in values.items()}

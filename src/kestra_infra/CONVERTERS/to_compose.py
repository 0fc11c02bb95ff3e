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
Converter for generating a docker-compose file from a task topology, so the
same container graph can be started on a workstation.
"""
import os
from typing import Mapping, Optional
from jinja2 import Environment
from ..MODELS.task_topology import TaskTopology, DependencyCondition
from ..UTILS.string_interpolation import EnvironmentInterpolator

COMPOSE_CONDITIONS = {
    DependencyCondition.START: "service_started",
    DependencyCondition.SUCCESS: "service_completed_successfully",
    DependencyCondition.HEALTHY: "service_healthy",
}

COMPOSE_TEMPLATE = """\
# Generated from topology {{ topology.name | tojson }}.
# Secrets are read from the environment or an .env file next to this file.
name: {{ topology.name | tojson }}

services:
{%- for svc in services %}
  {{ svc.name | tojson }}:
    image: {{ svc.image | tojson }}
{%- if svc.user %}
    user: {{ svc.user | tojson }}
{%- endif %}
{%- if svc.entry_point %}
    entrypoint: {{ svc.entry_point | tojson }}
{%- endif %}
{%- if svc.command %}
    command: {{ svc.command | tojson }}
{%- endif %}
{%- if not svc.essential %}
    restart: "no"
{%- endif %}
{%- if svc.environment %}
    environment:
{%- for k, v in svc.environment.items() %}
      {{ k | tojson }}: {{ v | tojson }}
{%- endfor %}
{%- endif %}
{%- if svc.ports %}
    ports:
{%- for p in svc.ports %}
      - {{ p | tojson }}
{%- endfor %}
{%- endif %}
{%- if svc.health_check %}
    healthcheck:
      test: {{ svc.health_check.command | tojson }}
      interval: {{ svc.health_check.interval }}s
      timeout: {{ svc.health_check.timeout }}s
      retries: {{ svc.health_check.retries }}
      start_period: {{ svc.health_check.start_period }}s
{%- endif %}
{%- if svc.depends_on %}
    depends_on:
{%- for dep in svc.depends_on %}
      {{ dep.container | tojson }}:
        condition: {{ dep.condition }}
{%- endfor %}
{%- endif %}
{%- if svc.volumes %}
    volumes:
{%- for m in svc.volumes %}
      - {{ m | tojson }}
{%- endfor %}
{%- endif %}
{%- if svc.cpus %}
    cpus: {{ svc.cpus }}
{%- endif %}
{%- if svc.mem_limit %}
    mem_limit: {{ svc.mem_limit }}m
{%- endif %}
{%- if svc.mem_reservation %}
    mem_reservation: {{ svc.mem_reservation }}m
{%- endif %}
{%- endfor %}
{%- if volumes %}

volumes:
{%- for name in volumes %}
  {{ name | tojson }}: {}
{%- endfor %}
{%- endif %}
"""


def _escape(value: str) -> str:
    # compose interpolates $VAR itself; $$ is a literal dollar
    return value.replace("$", "$$")


class ComposeConverter:
    """
    Converts a task topology into a docker-compose file.
    """

    def __init__(self, topology: TaskTopology, context: Optional[Mapping[str, str]] = None):
        """
        Initializes the compose converter.

        :param topology: The parsed topology.
        :param context: Values for ${VAR} placeholders in environment values.
        """
        self.topology = topology
        self.context = dict(context or {})
        self.template = Environment(keep_trailing_newline=True).from_string(COMPOSE_TEMPLATE)

    def render(self) -> str:
        """
        Renders the compose document.
        """
        services = []
        for name, c in self.topology.containers.items():
            environment = {
                k: _escape(v)
                for k, v in EnvironmentInterpolator.interpolate_mapping(c.environment, self.context).items()
            }
            for env_name in c.secrets:
                environment[env_name] = "${%s}" % env_name

            ports = []
            for p in c.port_mappings:
                port = f"{p.host_port or p.container_port}:{p.container_port}"
                if p.protocol != "tcp":
                    port = f"{port}/{p.protocol}"
                ports.append(port)

            services.append({
                "name": name,
                "image": c.image,
                "user": c.user,
                "essential": c.essential,
                "entry_point": [_escape(part) for part in c.entry_point],
                "command": [_escape(part) for part in c.command],
                "environment": environment,
                "ports": ports,
                "health_check": c.health_check.model_copy(
                    update={"command": [_escape(part) for part in c.health_check.command]}
                ) if c.health_check else None,
                "depends_on": [
                    {"container": dep.container, "condition": COMPOSE_CONDITIONS[dep.condition]}
                    for dep in c.depends_on
                ],
                "volumes": [
                    f"{m.source_volume}:{m.container_path}" + (":ro" if m.read_only else "")
                    for m in c.mount_points
                ],
                "cpus": round(c.cpu / 1024, 3) if c.cpu else None,
                "mem_limit": c.memory_limit_mib,
                "mem_reservation": c.memory_reservation_mib,
            })

        return self.template.render(
            topology=self.topology,
            services=services,
            volumes=list(self.topology.volumes),
        )

    def convert(self, output_dir: str = "dist") -> str:
        """
        Writes docker-compose.yml into the output directory.

        :param output_dir: The directory where the compose file will be created.
        :return: The path of the written file.
        """
        os.makedirs(output_dir, exist_ok=True)
        path = os.path.join(output_dir, "docker-compose.yml")
        with open(path, "w") as f:
            f.write(self.render())

        print(f"Compose file generated in {output_dir}")
        return path

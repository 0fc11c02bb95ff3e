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
Parser for task topology YAML files.
"""
import re
import yaml
from typing import Dict, Any, List
from ..MODELS.task_topology import (
    TaskTopology,
    ContainerDefinition,
    ContainerDependency,
    DependencyCondition,
    HealthCheck,
    MountPoint,
    PortMapping,
    SecretReference,
    VolumeDefinition,
)

_DURATION = re.compile(r'^\s*(\d+)\s*(s|m|h)?\s*$')
_DURATION_UNITS = {None: 1, 's': 1, 'm': 60, 'h': 3600}


class TopologyParser:
    """
    Parser for topology files describing the containers of one task.
    """
    def parse(self, topology_path: str) -> TaskTopology:
        """
        Parses a topology file from a path.

        :param topology_path: Path to the topology file.
        :return: Parsed topology.
        """
        with open(topology_path, 'r') as f:
            content = f.read()
        return self.parse_from_string(content)

    def parse_from_string(self, content: str) -> TaskTopology:
        """
        Parses a topology from a YAML string.

        :param content: YAML content of the topology.
        :return: Parsed topology.
        :raises ValueError: If the document is not a topology mapping.
        """
        data = yaml.safe_load(content)
        if not isinstance(data, dict):
            raise ValueError("Topology document must be a mapping")
        if not data.get('name'):
            raise ValueError("Topology requires a name")

        containers_spec = data.get('containers') or {}
        if not isinstance(containers_spec, dict) or not containers_spec:
            raise ValueError("Topology requires a 'containers' mapping with at least one container")

        volumes_spec = data.get('volumes') or {}
        if not isinstance(volumes_spec, dict):
            raise ValueError("Topology 'volumes' must be a mapping")
        volumes = {}
        for name, spec in volumes_spec.items():
            if isinstance(spec, str):
                # shorthand: volume name -> root directory
                spec = {'root_directory': spec}
            if spec is not None and not isinstance(spec, dict):
                raise ValueError(f"Volume {name} must be a mapping or a root directory")
            values = dict(spec or {})
            values['name'] = str(name)
            volumes[str(name)] = VolumeDefinition.model_validate(values)

        containers = {}
        for name, spec in containers_spec.items():
            containers[str(name)] = self._parse_container(str(name), spec or {})

        return TaskTopology(
            name=str(data['name']),
            network_mode=data.get('network_mode', 'awsvpc'),
            log_group=data.get('log_group'),
            stream_prefix=data.get('stream_prefix'),
            volumes=volumes,
            containers=containers,
        )

    def _parse_container(self, name: str, spec: Dict[str, Any]) -> ContainerDefinition:
        """
        Parses a single container definition.

        :param name: The name of the container.
        :param spec: The container specification dictionary.
        :return: A ContainerDefinition instance.
        """
        if not isinstance(spec, dict):
            raise ValueError(f"Container {name} must be a mapping")

        health_check = None
        if spec.get('health_check'):
            health_check = self._parse_health_check(spec['health_check'])

        return ContainerDefinition(
            name=name,
            image=spec.get('image', ''),
            essential=spec.get('essential', True),
            cpu=spec.get('cpu'),
            memory_reservation_mib=spec.get('memory_reservation_mib'),
            memory_limit_mib=spec.get('memory_limit_mib'),
            entry_point=self._to_list(spec.get('entry_point', spec.get('entrypoint'))),
            command=self._to_list(spec.get('command')),
            user=spec.get('user'),
            environment=self._parse_environment(spec.get('environment')),
            secrets=self._parse_secrets(spec.get('secrets')),
            port_mappings=[self._parse_port(p) for p in self._items(spec.get('port_mappings', spec.get('ports')))],
            health_check=health_check,
            depends_on=self._parse_depends_on(spec.get('depends_on')),
            mount_points=[self._parse_mount(m) for m in self._items(spec.get('mount_points', spec.get('volumes')))],
        )

    def _parse_depends_on(self, spec: Any) -> List[ContainerDependency]:
        """
        Accepts a list of names (condition START) or a mapping of name to condition.
        """
        if not spec:
            return []
        if isinstance(spec, (list, tuple)):
            return [ContainerDependency(container=str(name)) for name in spec]
        if isinstance(spec, dict):
            edges = []
            for name, condition in spec.items():
                if isinstance(condition, dict):
                    condition = condition.get('condition', DependencyCondition.START)
                if condition is None:
                    condition = DependencyCondition.START
                edges.append(ContainerDependency(container=str(name), condition=condition))
            return edges
        raise ValueError(f"Invalid depends_on: {spec!r}")

    def _parse_health_check(self, spec: Any) -> HealthCheck:
        if not isinstance(spec, dict):
            return HealthCheck(command=spec)
        values = dict(spec)
        for key in ('interval', 'timeout', 'start_period'):
            if key in values:
                values[key] = self._seconds(values[key])
        return HealthCheck.model_validate(values)

    def _parse_mount(self, spec: Any) -> MountPoint:
        """
        Parses 'volume:/path' or 'volume:/path:ro', or a mapping.
        """
        if isinstance(spec, dict):
            return MountPoint.model_validate(spec)
        parts = str(spec).split(':')
        if len(parts) == 2:
            return MountPoint(source_volume=parts[0], container_path=parts[1])
        if len(parts) == 3 and parts[2] in ('ro', 'rw'):
            return MountPoint(source_volume=parts[0], container_path=parts[1], read_only=(parts[2] == 'ro'))
        raise ValueError(f"Invalid mount point: {spec!r}")

    def _parse_port(self, spec: Any) -> PortMapping:
        """
        Parses 8080, '8080', '5432:5432' or '5432:5432/udp', or a mapping.
        """
        if isinstance(spec, dict):
            return PortMapping.model_validate(spec)
        text = str(spec)
        protocol = 'tcp'
        if '/' in text:
            text, protocol = text.split('/', 1)
        parts = text.split(':')
        if len(parts) == 1:
            return PortMapping(container_port=int(parts[0]), protocol=protocol)
        if len(parts) == 2:
            return PortMapping(container_port=int(parts[1]), host_port=int(parts[0]), protocol=protocol)
        raise ValueError(f"Invalid port mapping: {spec!r}")

    def _parse_environment(self, spec: Any) -> Dict[str, str]:
        environment = {}
        if isinstance(spec, list):
            for e in spec:
                if '=' in str(e):
                    k, v = str(e).split('=', 1)
                    environment[k] = v
        elif isinstance(spec, dict):
            for k, v in spec.items():
                environment[str(k)] = self._to_str(v)
        return environment

    def _parse_secrets(self, spec: Any) -> Dict[str, SecretReference]:
        if spec and not isinstance(spec, dict):
            raise ValueError(f"Invalid secrets: {spec!r}")
        secrets = {}
        for env_name, ref in (spec or {}).items():
            if isinstance(ref, dict):
                secrets[str(env_name)] = SecretReference.model_validate(ref)
            else:
                secrets[str(env_name)] = SecretReference(secret=str(ref))
        return secrets

    def _seconds(self, value: Any) -> int:
        """
        Converts 30, '30', '30s', '5m' or '1h' to seconds.
        """
        if isinstance(value, bool):
            raise ValueError(f"Invalid duration: {value!r}")
        if isinstance(value, (int, float)):
            return int(value)
        match = _DURATION.match(str(value))
        if not match:
            raise ValueError(f"Invalid duration: {value!r}")
        return int(match.group(1)) * _DURATION_UNITS[match.group(2)]

    def _items(self, val: Any) -> List[Any]:
        if val is None:
            return []
        if not isinstance(val, list):
            raise ValueError(f"Expected a list, got {val!r}")
        return val

    def _to_str(self, val: Any) -> str:
        if isinstance(val, bool):
            return 'true' if val else 'false'
        if val is None:
            return ''
        return str(val)

    def _to_list(self, val: Any) -> List[str]:
        """
        Helper to ensure a value is a list of strings.

        :param val: The value to convert.
        :return: A list of strings.
        """
        if val is None:
            return []
        if isinstance(val, (list, tuple)):
            return [str(v) for v in val]
        return [str(val)]

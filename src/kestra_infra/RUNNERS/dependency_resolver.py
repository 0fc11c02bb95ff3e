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
Dependency resolution for task containers to determine startup order.
"""
from typing import List, Dict, Tuple
from ..MODELS.task_topology import TaskTopology, DependencyCondition

Edge = Tuple[str, str, DependencyCondition]


class CircularDependencyError(ValueError):
    """Raised when container dependencies form a cycle."""

    def __init__(self, cycle: List[str]):
        self.cycle = cycle
        super().__init__(f"Circular dependency detected: {' -> '.join(cycle)}")


class DependencyResolver:
    """
    Resolves the startup order of containers based on their dependencies.
    Dependencies on containers missing from the topology are ignored here;
    the validator reports them.
    """
    def resolve_order(self, topology: TaskTopology) -> List[str]:
        """
        Determines the order to start containers using a depth-first topological sort.
        Independent containers keep their declaration order.

        :param topology: The task topology.
        :return: Container names in the order they may be started.
        :raises CircularDependencyError: If a cycle is detected.
        """
        containers = topology.containers
        ordered = []
        visited = set()
        path: List[str] = []

        def visit(name):
            if name in path:
                raise CircularDependencyError(path[path.index(name):] + [name])
            if name in visited:
                return
            path.append(name)
            for dep in containers[name].dependency_names():
                if dep in containers:
                    visit(dep)
            path.pop()
            visited.add(name)
            ordered.append(name)

        for name in containers:
            visit(name)

        return ordered

    def startup_waves(self, topology: TaskTopology) -> List[List[str]]:
        """
        Groups containers into waves; every dependency of a container sits in an earlier wave.

        :param topology: The task topology.
        :return: Lists of container names, first wave first.
        :raises CircularDependencyError: If a cycle is detected.
        """
        order = self.resolve_order(topology)
        level: Dict[str, int] = {}
        for name in order:
            deps = [d for d in topology.containers[name].dependency_names() if d in topology.containers]
            level[name] = 1 + max((level[d] for d in deps), default=-1)

        waves: List[List[str]] = [[] for _ in range(max(level.values(), default=-1) + 1)]
        for name in topology.containers:
            waves[level[name]].append(name)
        return waves

    def edges(self, topology: TaskTopology) -> List[Edge]:
        """
        Flattens the topology into (dependent, dependency, condition) edges.
        """
        return [
            (name, dep.container, dep.condition)
            for name, container in topology.containers.items()
            for dep in container.depends_on
        ]

    def dependents(self, topology: TaskTopology, name: str) -> List[str]:
        """
        Containers that directly depend on `name`.
        """
        return [src for src, dst, _ in self.edges(topology) if dst == name]

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
Static checks for a task topology before it is handed to an orchestrator.
"""
from dataclasses import dataclass
from itertools import combinations
from typing import List, Optional, Set
from ..MODELS.task_topology import TaskTopology, DependencyCondition
from ..MODELS.container_image import ImageReference
from .dependency_resolver import DependencyResolver, CircularDependencyError

ERROR = "error"
WARNING = "warning"

# Limits enforced by ECS on container health checks, in seconds.
HEALTH_CHECK_LIMITS = {
    "interval": (5, 300),
    "timeout": (2, 120),
    "retries": (1, 10),
    "start_period": (0, 300),
}


@dataclass
class ValidationIssue:
    """A single finding about a topology."""

    severity: str
    message: str
    container: Optional[str] = None

    def __str__(self) -> str:
        where = f"[{self.container}] " if self.container else ""
        return f"{self.severity.upper()}: {where}{self.message}"


class TopologyValidationError(ValueError):
    """Raised when a topology has one or more errors."""

    def __init__(self, issues: List[ValidationIssue]):
        self.issues = issues
        super().__init__("Invalid topology:\n" + "\n".join(f"  {issue}" for issue in issues))


class TopologyValidator:
    """
    Checks the dependency graph, probes, images and volume access of a topology.
    """
    def __init__(self):
        self.resolver = DependencyResolver()

    def validate(self, topology: TaskTopology) -> List[ValidationIssue]:
        """
        Runs every check and collects the findings.

        :param topology: The topology to check.
        :return: All issues found, errors and warnings alike.
        """
        issues: List[ValidationIssue] = []
        issues.extend(self._check_graph(topology))
        issues.extend(self._check_containers(topology))
        issues.extend(self._check_volumes(topology))
        return issues

    def validate_or_raise(self, topology: TaskTopology) -> List[ValidationIssue]:
        """
        Validates and raises if any error was found.

        :return: The remaining warnings.
        :raises TopologyValidationError: If at least one error exists.
        """
        issues = self.validate(topology)
        errors = [i for i in issues if i.severity == ERROR]
        if errors:
            raise TopologyValidationError(errors)
        return issues

    def _check_graph(self, topology: TaskTopology) -> List[ValidationIssue]:
        issues = []
        containers = topology.containers

        try:
            self.resolver.resolve_order(topology)
        except CircularDependencyError as e:
            issues.append(ValidationIssue(ERROR, str(e), e.cycle[0]))

        for name, dep_name, condition in self.resolver.edges(topology):
            target = containers.get(dep_name)
            if target is None:
                issues.append(ValidationIssue(ERROR, f"depends on undefined container '{dep_name}'", name))
                continue
            if condition == DependencyCondition.HEALTHY and target.health_check is None:
                issues.append(ValidationIssue(
                    ERROR, f"waits for '{dep_name}' to be HEALTHY but it declares no health check", name))
            if condition == DependencyCondition.SUCCESS and target.essential:
                issues.append(ValidationIssue(
                    ERROR, f"waits for '{dep_name}' to exit with SUCCESS but it is essential", name))

        if not any(c.essential for c in containers.values()):
            issues.append(ValidationIssue(ERROR, "at least one container must be essential"))
        return issues

    def _check_containers(self, topology: TaskTopology) -> List[ValidationIssue]:
        issues = []
        for name, container in topology.containers.items():
            try:
                image = ImageReference.parse(container.image)
                if not image.is_pinned:
                    issues.append(ValidationIssue(WARNING, f"image '{container.image}' is not pinned", name))
            except ValueError as e:
                issues.append(ValidationIssue(ERROR, str(e), name))

            if container.memory_reservation_mib is None and container.memory_limit_mib is None:
                issues.append(ValidationIssue(ERROR, "needs memory_reservation_mib or memory_limit_mib", name))
            if (container.memory_reservation_mib is not None and container.memory_limit_mib is not None
                    and container.memory_limit_mib < container.memory_reservation_mib):
                issues.append(ValidationIssue(ERROR, "memory_limit_mib is below memory_reservation_mib", name))

            hc = container.health_check
            if hc is not None:
                for attr, (low, high) in HEALTH_CHECK_LIMITS.items():
                    value = getattr(hc, attr)
                    if not low <= value <= high:
                        issues.append(ValidationIssue(
                            ERROR, f"health check {attr}={value} outside {low}..{high}", name))

            for mount in container.mount_points:
                if mount.source_volume not in topology.volumes:
                    issues.append(ValidationIssue(
                        ERROR, f"mounts undefined volume '{mount.source_volume}'", name))
        return issues

    def _check_volumes(self, topology: TaskTopology) -> List[ValidationIssue]:
        issues = []
        used: Set[str] = set()
        for container in topology.containers.values():
            used.update(m.source_volume for m in container.mount_points)

        for name, volume in topology.volumes.items():
            if volume.root_directory and volume.access_point and volume.root_directory != "/":
                issues.append(ValidationIssue(
                    ERROR, f"volume '{name}' sets both root_directory and access_point"))
            if volume.access_point and not volume.iam_authorization:
                issues.append(ValidationIssue(
                    WARNING, f"volume '{name}' uses an access point without IAM authorization"))
            if name not in used:
                issues.append(ValidationIssue(WARNING, f"volume '{name}' is not mounted by any container"))

            writers = [c.name for c in topology.containers.values() if name in c.writable_volumes()]
            for a, b in combinations(writers, 2):
                if not (self._exits_before(topology, a, b) or self._exits_before(topology, b, a)):
                    issues.append(ValidationIssue(
                        ERROR, f"volume '{name}' is writable by '{a}' and '{b}' which may run concurrently", b))
        return issues

    def _exits_before(self, topology: TaskTopology, first: str, second: str) -> bool:
        """
        True when `second` can only start after `first` exited successfully:
        some container on `second`'s dependency closure (itself included)
        waits for `first` with SUCCESS.
        """
        seen: Set[str] = set()
        stack = [second]
        while stack:
            name = stack.pop()
            if name in seen or name not in topology.containers:
                continue
            seen.add(name)
            for dep in topology.containers[name].depends_on:
                if dep.container == first and dep.condition == DependencyCondition.SUCCESS:
                    return True
                stack.append(dep.container)
        return False

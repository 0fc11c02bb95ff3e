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
An in-process model of how an orchestrator supervises a task: container
lifecycle, readiness probes, dependency conditions and group teardown.
It interprets a topology without running anything, so startup plans can be
checked and simulated before deployment.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from ..MODELS.task_topology import TaskTopology, ContainerDependency, DependencyCondition


class ContainerState(str, Enum):
    """Lifecycle state of a container."""

    PENDING = "pending"
    STARTING = "starting"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    STOPPED = "stopped"  # halted by a group teardown


TERMINAL_STATES = (ContainerState.SUCCEEDED, ContainerState.FAILED, ContainerState.STOPPED)


class HealthStatus(str, Enum):
    """Health status of a container."""

    STARTING = "starting"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    NONE = "none"  # No health check configured


@dataclass
class ContainerStatus:
    """Observed status of one container."""

    state: ContainerState = ContainerState.PENDING
    health: HealthStatus = HealthStatus.NONE
    started: bool = False
    exit_code: Optional[int] = None
    passing_streak: int = 0
    failing_streak: int = 0


@dataclass
class SupervisorEvent:
    """A state or health change, in the order the supervisor saw it."""

    container: str
    kind: str
    detail: str = ""

    def __str__(self) -> str:
        return f"{self.container:15} {self.kind:10} {self.detail}".rstrip()


class TaskSupervisor:
    """
    Tracks container status for one task and decides which containers may start.
    """
    def __init__(self, topology: TaskTopology):
        """
        Initializes every container as pending.

        :param topology: The task topology to supervise.
        """
        self.topology = topology
        self.events: List[SupervisorEvent] = []
        self.teardown_reason: Optional[str] = None
        self._status: Dict[str, ContainerStatus] = {}
        for name, container in topology.containers.items():
            health = HealthStatus.STARTING if container.health_check else HealthStatus.NONE
            self._status[name] = ContainerStatus(health=health)

    def status(self, name: str) -> ContainerStatus:
        return self._status[name]

    def ps(self) -> Dict[str, str]:
        """
        Returns the state of all containers.
        """
        return {name: status.state.value for name, status in self._status.items()}

    def is_satisfied(self, dep: ContainerDependency) -> bool:
        """
        Whether the dependency has reached the state its edge requires.
        Edges to containers outside the topology never hold a container back.
        """
        target = self._status.get(dep.container)
        if target is None:
            return True
        if dep.condition == DependencyCondition.START:
            return target.started
        if dep.condition == DependencyCondition.SUCCESS:
            return target.state == ContainerState.SUCCEEDED and target.exit_code == 0
        return target.health == HealthStatus.HEALTHY

    def is_unsatisfiable(self, dep: ContainerDependency) -> bool:
        """
        Whether the dependency can no longer reach the state its edge requires.
        """
        target = self._status.get(dep.container)
        if target is None or self.is_satisfied(dep):
            return False
        if dep.condition == DependencyCondition.START:
            return target.state in TERMINAL_STATES
        if dep.condition == DependencyCondition.SUCCESS:
            return target.state in (ContainerState.FAILED, ContainerState.STOPPED)
        return target.health == HealthStatus.UNHEALTHY or target.state in TERMINAL_STATES

    def startable(self) -> List[str]:
        """
        Pending containers whose dependencies are all satisfied.
        Nothing is startable once the task has been torn down.
        """
        if self.teardown_reason is not None:
            return []
        return [
            name for name, container in self.topology.containers.items()
            if self._status[name].state == ContainerState.PENDING
            and all(self.is_satisfied(dep) for dep in container.depends_on)
        ]

    def blocked(self) -> List[str]:
        """
        Pending containers that will never start because a dependency failed.
        """
        return [
            name for name, container in self.topology.containers.items()
            if self._status[name].state == ContainerState.PENDING
            and any(self.is_unsatisfiable(dep) for dep in container.depends_on)
        ]

    def mark_starting(self, name: str):
        """
        Moves a pending container to starting.

        :raises ValueError: If the container is not pending or its dependencies are unmet.
        """
        status = self._require(name, ContainerState.PENDING)
        unmet = [dep.container for dep in self.topology.containers[name].depends_on if not self.is_satisfied(dep)]
        if unmet:
            raise ValueError(f"Container {name} is waiting on: {', '.join(unmet)}")
        self._transition(name, status, ContainerState.STARTING)

    def mark_running(self, name: str):
        status = self._require(name, ContainerState.STARTING)
        status.started = True
        self._transition(name, status, ContainerState.RUNNING)

    def mark_exited(self, name: str, exit_code: int):
        """
        Records a container exit. An essential container exiting tears the task down.

        :param name: The container that exited.
        :param exit_code: Its exit status; zero means success.
        """
        status = self._require(name, ContainerState.STARTING, ContainerState.RUNNING)
        status.started = True
        status.exit_code = exit_code
        new_state = ContainerState.SUCCEEDED if exit_code == 0 else ContainerState.FAILED
        self._transition(name, status, new_state, f"exit code {exit_code}")

        if self.topology.containers[name].essential:
            verb = "exited" if exit_code == 0 else "failed"
            self.tear_down(f"essential container {name} {verb} with exit code {exit_code}")

    def record_probe(self, name: str, passed: bool, in_start_period: bool = False):
        """
        Records one readiness probe result.

        Passing probes count toward healthy_threshold. Failing probes inside
        the start period are ignored; outside it, `retries` consecutive
        failures mark the container unhealthy.

        :raises ValueError: If the container is not running or has no health check.
        """
        status = self._require(name, ContainerState.RUNNING)
        hc = self.topology.containers[name].health_check
        if hc is None:
            raise ValueError(f"Container {name} has no health check")

        if passed:
            status.passing_streak += 1
            status.failing_streak = 0
            if status.passing_streak >= hc.healthy_threshold and status.health != HealthStatus.HEALTHY:
                status.health = HealthStatus.HEALTHY
                self.events.append(SupervisorEvent(name, "healthy", f"after {status.passing_streak} probe(s)"))
            return

        status.passing_streak = 0
        if in_start_period:
            return
        status.failing_streak += 1
        if status.failing_streak >= hc.retries and status.health != HealthStatus.UNHEALTHY:
            status.health = HealthStatus.UNHEALTHY
            self.events.append(SupervisorEvent(name, "unhealthy", f"after {status.failing_streak} failed probe(s)"))

    def tear_down(self, reason: str) -> List[str]:
        """
        Stops every container that has not finished.

        :param reason: Why the task is being torn down.
        :return: Names of the containers that were stopped.
        """
        if self.teardown_reason is None:
            self.teardown_reason = reason
            self.events.append(SupervisorEvent("*", "teardown", reason))
        stopped = []
        for name, status in self._status.items():
            if status.state not in TERMINAL_STATES:
                self._transition(name, status, ContainerState.STOPPED)
                stopped.append(name)
        return stopped

    def simulate(self) -> List[SupervisorEvent]:
        """
        Runs the task to a steady state assuming everything goes well:
        each startable container starts, probed containers pass their probe
        healthy_threshold times, and non-essential containers without a
        probe exit with status 0.

        :return: The events recorded so far, in order.
        """
        progress = True
        while progress and self.teardown_reason is None:
            progress = False
            for name in self.startable():
                self.mark_starting(name)
                self.mark_running(name)
                progress = True

            for name, container in self.topology.containers.items():
                status = self._status[name]
                if status.state != ContainerState.RUNNING:
                    continue
                hc = container.health_check
                if hc is not None and status.health != HealthStatus.HEALTHY:
                    for _ in range(hc.healthy_threshold):
                        self.record_probe(name, True)
                    if status.health == HealthStatus.HEALTHY:
                        progress = True
                elif hc is None and not container.essential:
                    self.mark_exited(name, 0)
                    progress = True

        return list(self.events)

    def _require(self, name: str, *states: ContainerState) -> ContainerStatus:
        if name not in self._status:
            raise KeyError(f"Unknown container: {name}")
        status = self._status[name]
        if status.state not in states:
            expected = " or ".join(s.value for s in states)
            raise ValueError(f"Container {name} is {status.state.value}, expected {expected}")
        return status

    def _transition(self, name: str, status: ContainerStatus, state: ContainerState, detail: str = ""):
        status.state = state
        self.events.append(SupervisorEvent(name, state.value, detail))

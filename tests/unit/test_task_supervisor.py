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
Unit tests for the task supervisor state machine.
"""
import pytest
from pydantic import ValidationError
from kestra_infra.PARSERS.topology_parser import TopologyParser
from kestra_infra.MANAGERS.task_supervisor import TaskSupervisor, ContainerState, HealthStatus


class TestStartGating:
    """Containers start only once their dependency edges hold."""

    def test_initial_state(self, kestra_topology):
        supervisor = TaskSupervisor(kestra_topology)
        assert set(supervisor.ps().values()) == {'pending'}
        assert supervisor.status('Postgres').health == HealthStatus.STARTING
        assert supervisor.status('RepoSyncer').health == HealthStatus.NONE
        assert supervisor.startable() == ['PostgresInit', 'SshInit']

    def test_success_edge(self, kestra_topology):
        supervisor = TaskSupervisor(kestra_topology)
        supervisor.mark_starting('PostgresInit')
        supervisor.mark_running('PostgresInit')
        assert 'Postgres' not in supervisor.startable()

        supervisor.mark_exited('PostgresInit', 0)
        assert supervisor.status('PostgresInit').state == ContainerState.SUCCEEDED
        assert 'Postgres' in supervisor.startable()

    def test_healthy_edge(self, kestra_topology):
        supervisor = TaskSupervisor(kestra_topology)
        for name in ('SshInit',):
            supervisor.mark_starting(name)
            supervisor.mark_running(name)
            supervisor.mark_exited(name, 0)
        supervisor.mark_starting('GitSync')
        supervisor.mark_running('GitSync')
        assert 'RepoSyncer' not in supervisor.startable()

        supervisor.record_probe('GitSync', True)
        assert supervisor.status('GitSync').health == HealthStatus.HEALTHY
        assert 'RepoSyncer' in supervisor.startable()

    def test_start_with_unmet_dependency_is_rejected(self, kestra_topology):
        supervisor = TaskSupervisor(kestra_topology)
        with pytest.raises(ValueError, match='waiting on: Postgres, GitSync, RepoSyncer'):
            supervisor.mark_starting('KestraServer')

    def test_unknown_container(self, kestra_topology):
        supervisor = TaskSupervisor(kestra_topology)
        with pytest.raises(KeyError):
            supervisor.mark_starting('Nope')

    def test_wrong_state(self, kestra_topology):
        supervisor = TaskSupervisor(kestra_topology)
        with pytest.raises(ValueError, match='is pending, expected starting'):
            supervisor.mark_running('SshInit')


class TestFailures:
    """Failed dependencies block dependents; essential exits tear the task down."""

    def test_failed_init_blocks_dependent(self, kestra_topology):
        supervisor = TaskSupervisor(kestra_topology)
        supervisor.mark_starting('SshInit')
        supervisor.mark_running('SshInit')
        supervisor.mark_exited('SshInit', 1)

        assert supervisor.status('SshInit').state == ContainerState.FAILED
        assert 'GitSync' in supervisor.blocked()
        assert 'GitSync' not in supervisor.startable()
        # non-essential failures do not stop the task
        assert supervisor.teardown_reason is None

    def test_essential_exit_tears_down(self, kestra_topology):
        supervisor = TaskSupervisor(kestra_topology)
        supervisor.mark_starting('PostgresInit')
        supervisor.mark_running('PostgresInit')
        supervisor.mark_exited('PostgresInit', 0)
        supervisor.mark_starting('Postgres')
        supervisor.mark_running('Postgres')
        supervisor.mark_exited('Postgres', 137)

        assert supervisor.teardown_reason == 'essential container Postgres failed with exit code 137'
        assert supervisor.status('KestraServer').state == ContainerState.STOPPED
        assert supervisor.status('PostgresInit').state == ContainerState.SUCCEEDED
        assert supervisor.startable() == []
        assert ('*', 'teardown') in [(e.container, e.kind) for e in supervisor.events]

    def test_probe_failures(self, kestra_topology):
        supervisor = TaskSupervisor(kestra_topology)
        supervisor.mark_starting('PostgresInit')
        supervisor.mark_running('PostgresInit')
        supervisor.mark_exited('PostgresInit', 0)
        supervisor.mark_starting('Postgres')
        supervisor.mark_running('Postgres')

        # failures inside the start period do not count
        for _ in range(5):
            supervisor.record_probe('Postgres', False, in_start_period=True)
        assert supervisor.status('Postgres').health == HealthStatus.STARTING

        supervisor.record_probe('Postgres', False)
        supervisor.record_probe('Postgres', False)
        assert supervisor.status('Postgres').health == HealthStatus.STARTING
        supervisor.record_probe('Postgres', False)
        assert supervisor.status('Postgres').health == HealthStatus.UNHEALTHY
        assert 'KestraServer' in supervisor.blocked()

    def test_essential_success_tears_down(self, kestra_topology):
        supervisor = TaskSupervisor(kestra_topology)
        supervisor.mark_starting('PostgresInit')
        supervisor.mark_running('PostgresInit')
        supervisor.mark_exited('PostgresInit', 0)
        supervisor.mark_starting('Postgres')
        supervisor.mark_running('Postgres')
        supervisor.mark_exited('Postgres', 0)

        assert supervisor.status('Postgres').state == ContainerState.SUCCEEDED
        assert supervisor.teardown_reason == 'essential container Postgres exited with exit code 0'
        assert supervisor.status('KestraServer').state == ContainerState.STOPPED
        assert supervisor.status('RepoSyncer').state == ContainerState.STOPPED
        assert supervisor.startable() == []

    def test_probe_requires_health_check(self, kestra_topology):
        supervisor = TaskSupervisor(kestra_topology)
        supervisor.mark_starting('SshInit')
        supervisor.mark_running('SshInit')
        with pytest.raises(ValueError, match='has no health check'):
            supervisor.record_probe('SshInit', True)


def test_simulate_reaches_steady_state(kestra_topology):
    supervisor = TaskSupervisor(kestra_topology)
    events = supervisor.simulate()

    assert supervisor.ps() == {
        'PostgresInit': 'succeeded',
        'Postgres': 'running',
        'SshInit': 'succeeded',
        'GitSync': 'running',
        'RepoSyncer': 'running',
        'KestraServer': 'running',
    }
    assert supervisor.teardown_reason is None

    started = [e.container for e in events if e.kind == 'running']
    assert started == ['PostgresInit', 'SshInit', 'Postgres', 'GitSync', 'RepoSyncer', 'KestraServer']
    kinds = [(e.container, e.kind) for e in events]
    assert kinds.index(('GitSync', 'healthy')) < kinds.index(('RepoSyncer', 'starting'))
    assert kinds.index(('PostgresInit', 'succeeded')) < kinds.index(('Postgres', 'starting'))
    assert ('KestraServer', 'healthy') in kinds


PROBED_TOPOLOGY = """
name: probed
containers:
  Db:
    image: postgres:16
    memory_reservation_mib: 256
    health_check:
      command: pg_isready
      healthy_threshold: 2
  App:
    image: app:1.0
    memory_reservation_mib: 256
    depends_on:
      Db: HEALTHY
"""


class TestHealthyThreshold:
    """HEALTHY needs healthy_threshold consecutive passing probes."""

    def _running_db(self):
        supervisor = TaskSupervisor(TopologyParser().parse_from_string(PROBED_TOPOLOGY))
        supervisor.mark_starting('Db')
        supervisor.mark_running('Db')
        return supervisor

    def test_failure_resets_passing_streak(self):
        supervisor = self._running_db()
        supervisor.record_probe('Db', True)
        supervisor.record_probe('Db', False)
        supervisor.record_probe('Db', True)
        assert supervisor.status('Db').health == HealthStatus.STARTING
        assert 'App' not in supervisor.startable()

        supervisor.record_probe('Db', True)
        assert supervisor.status('Db').health == HealthStatus.HEALTHY
        assert supervisor.startable() == ['App']

    def test_simulate_probes_up_to_threshold(self):
        supervisor = TaskSupervisor(TopologyParser().parse_from_string(PROBED_TOPOLOGY))
        supervisor.simulate()
        assert supervisor.ps() == {'Db': 'running', 'App': 'running'}

    @pytest.mark.parametrize('field', ['healthy_threshold', 'retries'])
    def test_threshold_below_one_is_rejected(self, field):
        content = PROBED_TOPOLOGY.replace('healthy_threshold: 2', f'{field}: 0')
        with pytest.raises(ValidationError):
            TopologyParser().parse_from_string(content)

    def test_simulate_stops_when_probes_cannot_pass(self):
        topology = TopologyParser().parse_from_string(PROBED_TOPOLOGY)
        # assignment skips model validation
        topology.containers['Db'].health_check.healthy_threshold = 0
        supervisor = TaskSupervisor(topology)

        supervisor.simulate()
        assert supervisor.ps() == {'Db': 'running', 'App': 'pending'}

"""
Unit tests for the compose and ECS JSON converters.
"""
import json
import yaml
import pytest
from kestra_infra.CONVERTERS.to_compose import ComposeConverter
from kestra_infra.PARSERS.topology_parser import TopologyParser
from kestra_infra.CONVERTERS.to_ecs_json import EcsJsonConverter

CONTEXT = {'STORAGE_BUCKET': 'kestra-internal-storage-123456789012-eu-central-1'}

ODD_NAMES_TOPOLOGY = """
name: odd
volumes:
  'data: x': /data
containers:
  'db #1':
    image: postgres:16
  'app: web':
    image: app:1.0
    environment:
      'KEY: #1': value
    mount_points:
      - source_volume: 'data: x'
        container_path: /data
    depends_on:
      - 'db #1'
"""


class TestComposeConverter:

    def test_render(self, kestra_topology):
        doc = yaml.safe_load(ComposeConverter(kestra_topology, context=CONTEXT).render())

        assert doc['name'] == 'kestra'
        assert list(doc['services']) == list(kestra_topology.containers)
        assert set(doc['volumes']) == {'efs-shared', 'postgres-data', 'repo-watch', 'kestra-data'}

        server = doc['services']['KestraServer']
        assert server['depends_on'] == {
            'Postgres': {'condition': 'service_healthy'},
            'GitSync': {'condition': 'service_started'},
            'RepoSyncer': {'condition': 'service_started'},
        }
        assert server['environment']['KESTRA_STORAGE_S3_BUCKET'] == CONTEXT['STORAGE_BUCKET']
        assert server['environment']['KESTRA_DATABASE_PASSWORD'] == '${KESTRA_DATABASE_PASSWORD}'
        assert server['ports'] == ['8080:8080']
        assert server['volumes'] == ['repo-watch:/repo:ro', 'kestra-data:/app/storage']
        assert server['command'] == ['server', 'standalone', '--no-tutorials']
        assert server['cpus'] == 0.5

        postgres = doc['services']['Postgres']
        assert postgres['depends_on'] == {'PostgresInit': {'condition': 'service_completed_successfully'}}
        assert postgres['healthcheck']['test'] == ['CMD-SHELL', 'pg_isready -U kestra']
        assert postgres['healthcheck']['interval'] == '10s'
        assert postgres['mem_limit'] == '1024m'

        assert doc['services']['PostgresInit']['restart'] == 'no'
        assert 'restart' not in server

    def test_dollar_signs_are_escaped(self, kestra_topology):
        doc = yaml.safe_load(ComposeConverter(kestra_topology, context=CONTEXT).render())
        script = doc['services']['SshInit']['command'][0]
        assert '"$$SSH_PRIVATE_KEY"' in script

    def test_keys_with_yaml_syntax_are_quoted(self):
        topology = TopologyParser().parse_from_string(ODD_NAMES_TOPOLOGY)
        doc = yaml.safe_load(ComposeConverter(topology, context={}).render())

        app = doc['services']['app: web']
        assert app['environment'] == {'KEY: #1': 'value'}
        assert app['depends_on'] == {'db #1': {'condition': 'service_started'}}
        assert list(doc['volumes']) == ['data: x']

    def test_missing_context_raises(self, kestra_topology):
        with pytest.raises(KeyError):
            ComposeConverter(kestra_topology).render()

    def test_convert_writes_file(self, kestra_topology, tmp_path):
        path = ComposeConverter(kestra_topology, context=CONTEXT).convert(str(tmp_path / 'out'))
        assert path.endswith('docker-compose.yml')
        with open(path) as f:
            assert 'KestraServer' in yaml.safe_load(f)['services']


class TestEcsJsonConverter:

    def test_render(self, kestra_topology):
        doc = EcsJsonConverter(kestra_topology, file_system_id='fs-1234', context=CONTEXT).render()

        assert doc['family'] == 'kestra'
        assert doc['networkMode'] == 'awsvpc'
        assert doc['requiresCompatibilities'] == ['EC2']

        volumes = {v['name']: v['efsVolumeConfiguration'] for v in doc['volumes']}
        assert volumes['postgres-data'] == {
            'fileSystemId': 'fs-1234',
            'transitEncryption': 'ENABLED',
            'rootDirectory': '/postgres-data',
            'authorizationConfig': {'iam': 'ENABLED'},
        }

        containers = {c['name']: c for c in doc['containerDefinitions']}
        assert containers['KestraServer']['dependsOn'] == [
            {'containerName': 'Postgres', 'condition': 'HEALTHY'},
            {'containerName': 'GitSync', 'condition': 'START'},
            {'containerName': 'RepoSyncer', 'condition': 'START'},
        ]
        assert containers['PostgresInit']['essential'] is False
        assert containers['Postgres']['healthCheck']['startPeriod'] == 30
        assert containers['Postgres']['portMappings'] == [
            {'containerPort': 5432, 'protocol': 'tcp', 'hostPort': 5432}
        ]
        assert containers['KestraServer']['logConfiguration']['options']['awslogs-group'] == '/ecs/kestra'

        secrets = {s['name']: s['valueFrom'] for s in containers['SshInit']['secrets']}
        assert secrets['SSH_PRIVATE_KEY'] == (
            'arn:aws:secretsmanager:eu-central-1:123456789012:secret:kestra/git:SSH_PRIVATE_KEY::'
        )

    def test_access_points(self, access_point_topology):
        converter = EcsJsonConverter(access_point_topology, access_point_ids={'postgres': 'fsap-0abc'}, context=CONTEXT)
        volumes = {v['name']: v['efsVolumeConfiguration'] for v in converter.render()['volumes']}
        assert volumes['postgres-data']['authorizationConfig'] == {'accessPointId': 'fsap-0abc', 'iam': 'ENABLED'}
        assert 'rootDirectory' not in volumes['postgres-data']
        # unknown ids pass the access point name through
        assert volumes['kestra-data']['authorizationConfig']['accessPointId'] == 'kestra-data'

    def test_convert_writes_json(self, kestra_topology, tmp_path):
        path = EcsJsonConverter(kestra_topology, context=CONTEXT).convert(str(tmp_path))
        assert path.endswith('kestra-task-definition.json')
        with open(path) as f:
            assert json.load(f)['family'] == 'kestra'

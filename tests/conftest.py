import os
import pytest
from kestra_infra.PARSERS.topology_parser import TopologyParser

REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
TOPOLOGY_DIR = os.path.join(REPO_ROOT, "topologies")
DEFAULT_TOPOLOGY = os.path.join(TOPOLOGY_DIR, "kestra-task.yml")
ACCESS_POINT_TOPOLOGY = os.path.join(TOPOLOGY_DIR, "kestra-task-access-points.yml")


@pytest.fixture
def kestra_topology():
    return TopologyParser().parse(DEFAULT_TOPOLOGY)


@pytest.fixture
def access_point_topology():
    return TopologyParser().parse(ACCESS_POINT_TOPOLOGY)


@pytest.fixture
def default_topology_path():
    return DEFAULT_TOPOLOGY


@pytest.fixture
def access_point_topology_path():
    return ACCESS_POINT_TOPOLOGY

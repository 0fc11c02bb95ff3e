"""
Unit tests for topology validation.
"""
import pytest
from kestra_infra.PARSERS.topology_parser import TopologyParser
from kestra_infra.RUNNERS.topology_validator import (
    TopologyValidator,
    TopologyValidationError,
    ERROR,
    WARNING,
)

BASE = """
name: demo
volumes:
  data: /data
containers:
"""


def _issues(containers_yaml, base=BASE):
    topology = TopologyParser().parse_from_string(base + containers_yaml)
    return TopologyValidator().validate(topology)


def _errors(containers_yaml, base=BASE):
    return [str(i) for i in _issues(containers_yaml, base) if i.severity == ERROR]


def test_shipped_topologies_have_no_errors(kestra_topology, access_point_topology):
    validator = TopologyValidator()
    for topology in (kestra_topology, access_point_topology):
        warnings = validator.validate_or_raise(topology)
        assert all(w.severity == WARNING for w in warnings)


def test_latest_tag_is_a_warning(kestra_topology):
    warnings = TopologyValidator().validate(kestra_topology)
    assert any(w.container == 'KestraServer' and 'not pinned' in w.message for w in warnings)


def test_cycle_is_an_error():
    errors = _errors("""
  a:
    image: alpine:3.18
    memory_reservation_mib: 64
    depends_on: [b]
  b:
    image: alpine:3.18
    memory_reservation_mib: 64
    depends_on: [a]
""")
    assert any('Circular dependency detected' in e for e in errors)


def test_healthy_requires_health_check():
    errors = _errors("""
  db:
    image: postgres:17
    memory_reservation_mib: 512
  app:
    image: alpine:3.18
    memory_reservation_mib: 64
    depends_on:
      db: HEALTHY
""")
    assert errors == ["ERROR: [app] waits for 'db' to be HEALTHY but it declares no health check"]


def test_success_requires_non_essential_target():
    errors = _errors("""
  init:
    image: alpine:3.18
    memory_reservation_mib: 64
  app:
    image: alpine:3.18
    memory_reservation_mib: 64
    depends_on:
      init: SUCCESS
""")
    assert any("waits for 'init' to exit with SUCCESS but it is essential" in e for e in errors)


def test_undefined_dependency_and_volume():
    errors = _errors("""
  app:
    image: alpine:3.18
    memory_reservation_mib: 64
    depends_on: [ghost]
    volumes: ["nowhere:/x"]
""")
    assert any("undefined container 'ghost'" in e for e in errors)
    assert any("undefined volume 'nowhere'" in e for e in errors)


def test_needs_an_essential_container():
    errors = _errors("""
  job:
    image: alpine:3.18
    essential: false
    memory_reservation_mib: 64
""")
    assert any('at least one container must be essential' in e for e in errors)


def test_container_resource_and_image_checks():
    errors = _errors("""
  bad:
    image: "Not A Valid Image"
  small:
    image: alpine:3.18
    memory_reservation_mib: 512
    memory_limit_mib: 256
    health_check:
      command: "true"
      interval: 1
      retries: 50
""")
    assert any('[bad] Invalid repository' in e for e in errors)
    assert any('[bad] needs memory_reservation_mib' in e for e in errors)
    assert any('[small] memory_limit_mib is below' in e for e in errors)
    assert any('[small] health check interval=1 outside 5..300' in e for e in errors)
    assert any('[small] health check retries=50 outside 1..10' in e for e in errors)


def test_concurrent_writers_are_rejected():
    errors = _errors("""
  one:
    image: alpine:3.18
    memory_reservation_mib: 64
    volumes: ["data:/data"]
  two:
    image: alpine:3.18
    memory_reservation_mib: 64
    depends_on: [one]
    volumes: ["data:/data"]
""")
    assert any("writable by 'one' and 'two'" in e for e in errors)


def test_writer_ordered_by_success_edge_is_allowed():
    issues = _issues("""
  init:
    image: alpine:3.18
    essential: false
    memory_reservation_mib: 64
    volumes: ["data:/data"]
  reader:
    image: alpine:3.18
    memory_reservation_mib: 64
    volumes: ["data:/data:ro"]
  writer:
    image: alpine:3.18
    memory_reservation_mib: 64
    depends_on:
      init: SUCCESS
    volumes: ["data:/data"]
""")
    assert [i for i in issues if i.severity == ERROR] == []


def test_transitive_success_edge_orders_writers():
    issues = _issues("""
  init:
    image: alpine:3.18
    essential: false
    memory_reservation_mib: 64
    volumes: ["data:/data"]
  middle:
    image: alpine:3.18
    memory_reservation_mib: 64
    depends_on:
      init: SUCCESS
  writer:
    image: alpine:3.18
    memory_reservation_mib: 64
    depends_on: [middle]
    volumes: ["data:/data"]
""")
    assert [i for i in issues if i.severity == ERROR] == []


def test_volume_checks():
    base = """
name: demo
volumes:
  both:
    root_directory: /x
    access_point: ap
  no-iam:
    access_point: ap
    iam_authorization: false
  unused: /unused
containers:
"""
    issues = _issues("""
  app:
    image: alpine:3.18
    memory_reservation_mib: 64
    volumes: ["both:/both:ro", "no-iam:/no-iam:ro"]
""", base)
    messages = [(i.severity, i.message) for i in issues]
    assert (ERROR, "volume 'both' sets both root_directory and access_point") in messages
    assert (WARNING, "volume 'no-iam' uses an access point without IAM authorization") in messages
    assert (WARNING, "volume 'unused' is not mounted by any container") in messages


def test_validate_or_raise_carries_errors():
    topology = TopologyParser().parse_from_string(BASE + """
  app:
    image: alpine:3.18
    depends_on: [ghost]
""")
    with pytest.raises(TopologyValidationError) as excinfo:
        TopologyValidator().validate_or_raise(topology)
    assert all(i.severity == ERROR for i in excinfo.value.issues)
    assert len(excinfo.value.issues) == 2

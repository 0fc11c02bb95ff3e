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
Command Line Interface for kestra-infra.
"""
import os
import click
import yaml
from ..PARSERS.topology_parser import TopologyParser
from ..PARSERS.config_parser import ConfigParser
from ..MODELS.deployment_config import DeploymentConfig
from ..RUNNERS.dependency_resolver import DependencyResolver
from ..RUNNERS.topology_validator import TopologyValidator, ERROR
from ..MANAGERS.task_supervisor import TaskSupervisor
from ..CONVERTERS.to_compose import ComposeConverter
from ..CONVERTERS.to_ecs_json import EcsJsonConverter


@click.group()
@click.option('--file', '-f', default='topologies/kestra-task.yml', help='Task topology file path')
@click.option('--config', '-c', 'config_file', default='deploy.yml', help='Deployment configuration file path')
@click.pass_context
def cli(ctx, file, config_file):
    """
    Kestra on AWS - task topology tooling.

    Validates the container startup graph of the Kestra task and renders it
    for local runs or plain ECS.
    """
    ctx.ensure_object(dict)
    ctx.obj['file'] = file
    ctx.obj['config_file'] = config_file


def _load_topology(ctx):
    """
    Parses the topology file, or reports the problem and exits with status 1.
    """
    file = ctx.obj['file']
    if not os.path.exists(file):
        click.echo(f"Error: {file} not found.")
        ctx.exit(1)
    try:
        return TopologyParser().parse(file)
    except (ValueError, yaml.YAMLError) as e:
        click.echo(f"Error: {e}")
        ctx.exit(1)


def _load_config(ctx) -> DeploymentConfig:
    """
    Parses deploy.yml when present; defaults otherwise.
    """
    config_file = ctx.obj['config_file']
    try:
        if os.path.exists(config_file):
            config = ConfigParser().parse(config_file)
        else:
            config = DeploymentConfig()
        return ConfigParser.resolve_environment(config)
    except (ValueError, KeyError, yaml.YAMLError) as e:
        click.echo(f"Error: {e}")
        ctx.exit(1)


def _render_context(config: DeploymentConfig):
    """
    Interpolation context for rendered environment values. STORAGE_BUCKET
    defaults to the bucket name the S3 stack would create.
    """
    context = dict(os.environ)
    context.setdefault(
        'STORAGE_BUCKET',
        f"{config.bucket_prefix}-{config.account or 'ACCOUNT'}-{config.region}",
    )
    return context


@cli.command()
@click.pass_context
def validate(ctx):
    """Check the topology for cycles, bad references and unsafe volumes."""
    topology = _load_topology(ctx)
    issues = TopologyValidator().validate(topology)
    for issue in issues:
        click.echo(str(issue))

    errors = [i for i in issues if i.severity == ERROR]
    if errors:
        click.echo(f"Topology {topology.name} has {len(errors)} error(s).")
        ctx.exit(1)
    click.echo(f"Topology {topology.name} is valid.")


@cli.command()
@click.pass_context
def order(ctx):
    """Show startup waves and dependency edges"""
    topology = _load_topology(ctx)
    resolver = DependencyResolver()
    try:
        waves = resolver.startup_waves(topology)
    except ValueError as e:
        click.echo(f"Error: {e}")
        ctx.exit(1)

    for i, wave in enumerate(waves, start=1):
        click.echo(f"Wave {i}: {', '.join(wave)}")
    click.echo("")
    for dependent, dependency, condition in resolver.edges(topology):
        click.echo(f"{dependent} -> {dependency} ({condition.value})")
    click.echo("")
    for name in topology.containers:
        waiting = resolver.dependents(topology, name)
        if waiting:
            click.echo(f"{name} is awaited by: {', '.join(waiting)}")


@cli.command()
@click.pass_context
def plan(ctx):
    """Simulate a healthy task start"""
    topology = _load_topology(ctx)
    try:
        TopologyValidator().validate_or_raise(topology)
    except ValueError as e:
        click.echo(f"Error: {e}")
        ctx.exit(1)

    supervisor = TaskSupervisor(topology)
    click.echo(f"{'CONTAINER':15} {'EVENT':10} DETAIL")
    click.echo("-" * 40)
    for event in supervisor.simulate():
        click.echo(str(event))

    click.echo("")
    click.echo(f"{'CONTAINER':15} {'STATUS':10}")
    click.echo("-" * 25)
    for name, state in supervisor.ps().items():
        click.echo(f"{name:15} {state:10}")


@cli.command()
@click.option('--type', '-t', type=click.Choice(['compose', 'ecs-json']), default='compose')
@click.option('--out', '-o', default='dist', help='Output directory')
@click.pass_context
def convert(ctx, type, out):
    """Render the topology for another runtime"""
    topology = _load_topology(ctx)
    config = _load_config(ctx)
    context = _render_context(config)

    try:
        if type == 'compose':
            converter = ComposeConverter(topology, context=context)
        else:
            converter = EcsJsonConverter(topology, region=config.region, account=config.account, context=context)
        converter.convert(out)
    except (ValueError, KeyError) as e:
        click.echo(f"Error: {e}")
        ctx.exit(1)


@cli.command()
@click.pass_context
def config(ctx):
    """Print the resolved deployment configuration"""
    resolved = _load_config(ctx)
    click.echo(yaml.safe_dump(resolved.model_dump(mode='json'), sort_keys=False), nl=False)


def main():
    """
    Main entry point for the CLI.
    """
    cli(obj={})


if __name__ == '__main__':
    main()

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
Command Line Interface for V2M.
"""
import logging
import click
from ..MANAGERS.chart_renderer import ChartRenderer
from ..MODELS.errors import V2MError, ValidationError
from ..PARSERS.values_parser import build_context


def _fail(ctx, error: V2MError):
    """Reports an error on stderr and exits with status 1."""
    problems = error.problems if isinstance(error, ValidationError) else [str(error)]
    for problem in problems:
        click.echo(f"Error: {problem}", err=True)
    ctx.exit(1)


def _renderer(ctx) -> ChartRenderer:
    """Builds the renderer for the selected chart, exiting on load errors."""
    try:
        context = build_context(ctx.obj['env_files'])
        return ChartRenderer.from_chart_dir(ctx.obj['chart'], ctx.obj['values'], context=context)
    except V2MError as e:
        _fail(ctx, e)


@click.group()
@click.option('--chart', '-c', envvar='V2M_CHART', default=None,
              help='Chart directory holding values.yaml and values-<env>.yaml')
@click.option('--values', '-f', envvar='V2M_VALUES', default=None, help='Base values file')
@click.option('--env-file', 'env_files', multiple=True, help='Dotenv file for ${VAR} interpolation')
@click.option('--verbose', '-v', count=True, help='Log to stderr (-vv for debug)')
@click.pass_context
def cli(ctx, chart, values, env_files, verbose):
    """
    V2M - Values to Manifests.

    Expands a service registry and environment overlays into Kubernetes
    ConfigMap, Deployment and Service manifests.
    """
    ctx.ensure_object(dict)
    ctx.obj['chart'] = chart
    ctx.obj['values'] = values
    ctx.obj['env_files'] = env_files
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG if verbose > 1 else logging.INFO,
            format="%(levelname)s %(name)s: %(message)s",
        )


@cli.command()
@click.option('--env', '-e', 'env_name', default=None, help='Environment overlay to apply')
@click.option('--set', 'set_values', multiple=True, help='Override a value: key.path=value')
@click.option('--output', '-o', type=click.File('wb'), default='-', help='Output file (default stdout)')
@click.pass_context
def render(ctx, env_name, set_values, output):
    """Render the manifest stream."""
    renderer = _renderer(ctx)
    try:
        result = renderer.render(env_name, set_values)
    except V2MError as e:
        _fail(ctx, e)

    output.write(result.stream)
    output.flush()
    if not result.ok:
        for error in result.errors:
            click.echo(f"Error: {error}", err=True)
        ctx.exit(1)


@cli.command()
@click.option('--env', '-e', 'env_name', default=None, help='Environment overlay to apply')
@click.option('--set', 'set_values', multiple=True, help='Override a value: key.path=value')
@click.pass_context
def validate(ctx, env_name, set_values):
    """Validate the merged values without rendering."""
    renderer = _renderer(ctx)
    try:
        chart = renderer.load(env_name, set_values)
    except V2MError as e:
        _fail(ctx, e)
    click.echo(f"OK: {len(chart.services)} service(s), {len(chart.enabled_services)} enabled")


@cli.command()
@click.pass_context
def envs(ctx):
    """List known environments."""
    renderer = _renderer(ctx)
    for name in renderer.environments.list_environments():
        click.echo(name)


def main():
    """
    Main entry point for the CLI.
    """
    cli(obj={})


if __name__ == '__main__':
    main()

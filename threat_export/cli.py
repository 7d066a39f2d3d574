"""Threat Export - Command Line Interface."""

import json
import sys
from pathlib import Path

import click

from . import __version__
from .config import configure_logging, store_dir
from .exceptions import DocumentParseError, ViewError
from .model_adapter import to_render_graph
from .parser import load_document
from .service import ExportArtifact, ExportService, FileMatchStore


@click.group()
@click.version_option(version=__version__)
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
def cli(verbose: bool):
    """Threat Export - turn card game findings into threat model exports."""
    configure_logging(verbose)


@cli.command()
@click.argument('document_path', type=click.Path(exists=True, dir_okay=False))
def validate(document_path: str):
    """Validate a Threat Dragon V2 document."""
    try:
        document = load_document(document_path)
    except DocumentParseError as e:
        click.echo(click.style(f'Validation failed: {e}', fg='red'), err=True)
        sys.exit(1)

    cells = [cell for diagram in document.detail.diagrams for cell in diagram.cells]
    click.echo(click.style('Validation successful!', fg='green'))
    click.echo(f'  Title: {document.summary.title}')
    click.echo(f'  Version: {document.version}')
    click.echo(f'  Diagrams: {len(document.detail.diagrams)}')
    click.echo(f'  Cells: {len(cells)}')
    click.echo(f'  Threats: {sum(1 for _ in document.iter_threats())}')


@cli.command('render-graph')
@click.argument('document_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--diagram', '-d', 'diagram_index', type=int, default=0, help='Diagram position')
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Output JSON file path')
def render_graph(document_path: str, diagram_index: int, output: str):
    """Print the render graph of one diagram as JSON."""
    try:
        document = load_document(document_path)
    except DocumentParseError as e:
        click.echo(click.style(f'Failed to read document: {e}', fg='red'), err=True)
        sys.exit(1)

    diagrams = document.detail.diagrams
    diagram = diagrams[diagram_index] if 0 <= diagram_index < len(diagrams) else None
    if diagram is None:
        click.echo(click.style(f'No diagram at position {diagram_index}.', fg='yellow'), err=True)

    content = json.dumps(to_render_graph(diagram).to_json_dict(), indent=2, ensure_ascii=False)
    if output:
        Path(output).write_text(content, encoding='utf-8')
        click.echo(click.style(f'Render graph written: {output}', fg='green'))
    else:
        click.echo(content)


def _write_artifact(artifact: ExportArtifact, output_dir: str) -> Path:
    output_path = Path(output_dir) / artifact.filename
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(artifact.content)
    return output_path


def _export(kind: str, match_id: str, store: str, output_dir: str):
    service = ExportService(FileMatchStore(store or store_dir()))
    try:
        if kind == 'json':
            artifact = service.download_threat_model(match_id)
        else:
            artifact = service.download_threats_markdown(match_id)
    except ViewError as e:
        click.echo(click.style(f'Export failed ({e.STATUS.value}): {e}', fg='red'), err=True)
        sys.exit(1)

    output_path = _write_artifact(artifact, output_dir)
    click.echo(click.style('Export generated successfully!', fg='green'))
    click.echo(f'  Output: {output_path.resolve()}')


@cli.command('export-json')
@click.argument('match_id')
@click.option('--store', '-s', type=click.Path(file_okay=False), help='Directory holding stored matches')
@click.option('--output-dir', '-o', type=click.Path(file_okay=False), default='.', help='Output directory')
def export_json(match_id: str, store: str, output_dir: str):
    """Export the match's threat model with the identified threats merged in."""
    _export('json', match_id, store, output_dir)


@cli.command('export-markdown')
@click.argument('match_id')
@click.option('--store', '-s', type=click.Path(file_okay=False), help='Directory holding stored matches')
@click.option('--output-dir', '-o', type=click.Path(file_okay=False), default='.', help='Output directory')
def export_markdown(match_id: str, store: str, output_dir: str):
    """Export a Markdown report of every threat in the match."""
    _export('markdown', match_id, store, output_dir)


def main():
    """Entry point for the CLI."""
    cli()


if __name__ == '__main__':
    main()

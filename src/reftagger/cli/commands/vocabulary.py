"""Database setup and vocabulary configuration commands."""

import json
from pathlib import Path

import click

from reftagger.cli.base import CliCommand
from reftagger.database import init_db
from reftagger.vocabulary.resolver import VocabularyConfigResolver, load_payload_file


@click.command(name='init-db')
def init_db_command():
    """Create the vocabulary, image and tag tables if they do not exist."""
    InitDbCommand().execute()


@click.command(name='show-config')
def show_config_command():
    """Print the active vocabulary configuration as JSON."""
    ShowConfigCommand().execute()


@click.command(name='load-config')
@click.argument('path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--purge-corpus', is_flag=True, default=False,
              help='Delete all image and tag rows before activating the new vocabulary')
def load_config_command(path: Path, purge_corpus: bool):
    """Replace the active vocabulary with the definition in PATH (YAML or JSON)."""
    if purge_corpus:
        click.confirm('This deletes every image and tag row. Continue?', abort=True)
    LoadConfigCommand().execute(path=path, purge_corpus=purge_corpus)


class InitDbCommand(CliCommand):

    def run(self):
        init_db(self.engine)
        click.echo(f"Tables ready at {self.engine.url.render_as_string(hide_password=True)}")


class ShowConfigCommand(CliCommand):

    def run(self):
        click.echo(json.dumps(VocabularyConfigResolver(self.db).describe_active(), indent=2))


class LoadConfigCommand(CliCommand):

    def run(self, *, path: Path, purge_corpus: bool):
        try:
            payload = load_payload_file(path)
        except ValueError as exc:
            raise click.ClickException(f"Invalid vocabulary file {path}: {exc}") from exc
        result = VocabularyConfigResolver(self.db).replace_config(payload, purge_corpus=purge_corpus)
        stats = result["stats"]
        click.echo(
            f"Activated '{payload.config_name}' with {len(payload.structure.categories)} categories "
            f"({stats['tags_inserted']} tags inserted, {stats['tags_retired']} retired)"
        )
        if purge_corpus:
            click.echo(f"Deleted {stats['images_deleted']} images and {stats['tags_deleted']} tags")

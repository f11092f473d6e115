"""RefTagger CLI entry point with lazy command registration."""

from __future__ import annotations

import logging

import click

from reftagger.settings import settings

_COMMANDS_REGISTERED = False


def _register_commands_once() -> None:
    global _COMMANDS_REGISTERED
    if _COMMANDS_REGISTERED:
        return

    from .commands import search, tags, vocabulary

    cli.add_command(vocabulary.init_db_command, name="init-db")
    cli.add_command(vocabulary.show_config_command, name="show-config")
    cli.add_command(vocabulary.load_config_command, name="load-config")
    cli.add_command(search.search_command, name="search")
    cli.add_command(tags.list_tags_command, name="list-tags")
    cli.add_command(tags.merge_tags_command, name="merge-tags")

    _COMMANDS_REGISTERED = True


class _LazyCLIGroup(click.Group):
    def list_commands(self, ctx):
        _register_commands_once()
        return super().list_commands(ctx)

    def get_command(self, ctx, cmd_name):
        _register_commands_once()
        return super().get_command(ctx, cmd_name)


@click.group(cls=_LazyCLIGroup)
@click.option('--log-level', default=None, help='Override the configured log level')
def cli(log_level):
    """RefTagger CLI for managing the vocabulary and searching references."""
    logging.basicConfig(
        level=getattr(logging, (log_level or settings.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


if __name__ == "__main__":
    cli()

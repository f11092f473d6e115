"""Search the reference corpus from the command line."""

import json

import click

from reftagger.cli.base import CliCommand
from reftagger.search import ImageSearchService
from reftagger.settings import settings


@click.command(name='search')
@click.argument('keywords', nargs=-1, required=True)
@click.option('--json', 'as_json', is_flag=True, default=False, help='Print the raw response')
def search_command(keywords, as_json: bool):
    """Score searchable images against KEYWORDS and list the matches."""
    SearchCommand().execute(keywords=list(keywords), as_json=as_json)


class SearchCommand(CliCommand):

    def run(self, *, keywords, as_json):
        outcome = ImageSearchService(self.db, settings).search(keywords)
        if as_json:
            click.echo(json.dumps(outcome.to_dict(), indent=2))
            return
        if outcome.warning:
            click.echo(outcome.warning)
            return
        click.echo(f"{len(outcome.images)} images (tier {outcome.tier})")
        for image in outcome.images:
            click.echo(
                f"{image.match_score:>4}  {image.id}  {', '.join(image.matched_keywords)}"
            )

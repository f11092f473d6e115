"""Vocabulary tag inspection and merging."""

from typing import Optional

import click

from reftagger.cli.base import CliCommand
from reftagger.exceptions import PartialMergeError
from reftagger.reconcile import TagService
from reftagger.settings import settings


@click.command(name='list-tags')
@click.option('--category', default=None, help='Only list tags in this category')
@click.option('--include-inactive', is_flag=True, default=False, help='Include merged (inactive) tags')
def list_tags_command(category: Optional[str], include_inactive: bool):
    """List vocabulary tags with usage counts."""
    ListTagsCommand().execute(category=category, include_inactive=include_inactive)


@click.command(name='merge-tags')
@click.argument('source_id', type=int)
@click.argument('target_id', type=int)
def merge_tags_command(source_id: int, target_id: int):
    """Fold tag SOURCE_ID into TARGET_ID on every image and retire the source."""
    MergeTagsCommand().execute(source_id=source_id, target_id=target_id)


class ListTagsCommand(CliCommand):

    def run(self, *, category, include_inactive):
        tags = TagService(self.db, settings).list_tags(category=category, include_inactive=include_inactive)
        if not tags:
            click.echo("No tags found")
            return
        for tag in tags:
            state = "" if tag["is_active"] else "  (inactive)"
            click.echo(f"{tag['id']:>5}  {tag['category']:<20} {tag['tag_value']:<30} {tag['times_used']:>5}{state}")


class MergeTagsCommand(CliCommand):

    def run(self, *, source_id, target_id):
        try:
            report = TagService(self.db, settings).merge_tags(source_id, target_id)
        except PartialMergeError as exc:
            raise click.ClickException(
                f"{exc} ({exc.images_updated}/{exc.images_total} images updated; "
                "re-run the same merge to finish)"
            ) from exc
        click.echo(
            f"Merged '{report.source_value}' into '{report.target_value}' "
            f"in {report.category}: {report.images_updated} images updated"
        )

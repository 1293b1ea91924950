import logging

import click
import rdflib

from .config import load_config
from .errors import OntoSyncError
from .metadata import enrich_from_args, from_file
from .ontology import Ontology
from .repo import Repo


class ClickHandler(logging.Handler):
    """Writes log records with click.echo, warnings and errors to stderr."""

    def emit(self, record):
        try:
            msg = self.format(record)
        except Exception:
            self.handleError(record)
            return
        click.echo(msg, err=record.levelno >= logging.WARNING)


def setup_logging(verbose: bool) -> None:
    handler = ClickHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger = logging.getLogger("ontosync")
    logger.handlers[:] = [handler]
    logger.setLevel(logging.INFO if verbose else logging.WARNING)
    logger.propagate = False


@click.group()
def main():
    """Checks OWL ontologies and synchronizes them with a repository."""


@main.command()
@click.argument('config_file', type=click.Path(exists=True, dir_okay=False))
@click.argument('ontology_file', required=False, type=click.Path(exists=True, dir_okay=False))
@click.option('--repo-url', default=None, help='Check the ontology stored in this repository instead of a file.')
@click.option('--user', default=None, help='Repository user name.')
@click.option('--pswd', default=None, help='Repository password.')
@click.option('--all-properties', is_flag=True, help='Check properties outside of the ontology namespace too.')
@click.option('--verbose/--quiet', default=True, help='Report every rule violation.')
@click.pass_context
def check(ctx, config_file, ontology_file, repo_url, user, pswd, all_properties, verbose):
    """Checks if an OWL ontology is valid (exit code 0) or not (exit code 1)."""
    setup_logging(verbose)
    try:
        cfg = load_config(config_file)
        ontology = Ontology(cfg.ontology_schema)
        if ontology_file:
            ontology.load_file(ontology_file)
        else:
            url = repo_url or cfg.repository.url
            if not url:
                raise click.UsageError("provide an ontology file or a repository url")
            with Repo(url, user or cfg.repository.user, pswd or cfg.repository.password,
                      cfg.ontology_schema) as repo:
                ontology.load_repo(repo)
        valid = ontology.check(None if all_properties else cfg.ontology_schema.namespaces.ontology, verbose)
    except OntoSyncError as e:
        raise click.ClickException(str(e))

    if verbose:
        click.echo("ontology is valid" if valid else "ontology is NOT valid")
    ctx.exit(0 if valid else 1)


@main.command(name='import')
@click.argument('config_file', type=click.Path(exists=True, dir_okay=False))
@click.argument('repo_url', required=False)
@click.option('--user', default=None, help='Repository user name.')
@click.option('--pswd', default=None, help='Repository password.')
@click.option('--concurrency', type=click.IntRange(min=1), default=None, help='Number of parallel requests (default 3).')
@click.option('--retries', type=click.IntRange(min=0), default=None, help='Retry rounds for failed deletions (defaults to concurrency).')
@click.option('--deadline', type=float, default=None, help='Time limit in seconds for removing obsolete resources of a collection.')
@click.option('--ontology-file', type=click.Path(exists=True, dir_okay=False), default=None, help='Ontology to import.')
@click.option('--ontology-meta', type=click.Path(exists=True, dir_okay=False), default=None, help='RDF file with additional ontology file metadata.')
@click.option('--ontology-version', default=None)
@click.option('--ontology-date', default=None)
@click.option('--ontology-url', default=None)
@click.option('--ontology-info', default=None)
@click.option('--skip-binary', is_flag=True, help='Do not store the ontology file itself.')
@click.option('--skip-vocabularies', is_flag=True, help='Do not import vocabularies used by the ontology.')
@click.option('--verbose', '-v', is_flag=True, help='Report every decision taken.')
def import_cmd(config_file, repo_url, user, pswd, concurrency, retries, deadline,
               ontology_file, ontology_meta, ontology_version, ontology_date, ontology_url,
               ontology_info, skip_binary, skip_vocabularies, verbose):
    """Imports an ontology into a repository, removing obsolete ontology objects."""
    setup_logging(verbose)
    try:
        cfg = load_config(config_file)
        url = repo_url or cfg.repository.url
        path = ontology_file or cfg.ontology_file
        if not url:
            raise click.UsageError("repository url missing")
        if not path:
            raise click.UsageError("ontology file missing")
        concurrency = concurrency or cfg.concurrency
        retries = retries if retries is not None else cfg.retries

        ontology = Ontology(cfg.ontology_schema)
        ontology.load_file(path)

        with Repo(url, user or cfg.repository.user, pswd or cfg.repository.password,
                  cfg.ontology_schema) as repo:
            report = ontology.import_(repo, verbose, concurrency, retries, deadline)

            if not skip_binary:
                if ontology_meta:
                    meta, subject = from_file(ontology_meta)
                else:
                    meta, subject = None, None
                if any([ontology_version, ontology_date, ontology_url, ontology_info]):
                    if meta is None:
                        meta, subject = rdflib.Graph(), rdflib.BNode()
                    enrich_from_args(meta, subject, cfg.ontology_schema, ontology_version,
                                     ontology_date, ontology_url, ontology_info)
                ontology.import_owl_file(repo, path, meta, verbose)

            if not skip_vocabularies:
                ontology.import_vocabularies(repo, verbose, concurrency, retries)
    except OntoSyncError as e:
        raise click.ClickException(str(e))

    click.echo(f"Imported {len(report.imported)} ontology objects "
               f"({report.created} created, {report.updated} updated, {report.deleted} deleted, "
               f"{report.failed} invalid).")


if __name__ == '__main__':
    main()

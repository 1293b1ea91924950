import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, Iterable

import rdflib

from .errors import NotFound, RemoteRequestError
from .model import ImportReport, RemoteResource
from .repo import UPDATE_OVERWRITE

log = logging.getLogger(__name__)

ON_ERROR_FAIL = "fail"
ON_ERROR_CONTINUE = "continue"


def same_metadata(remote: RemoteResource, meta: rdflib.Graph, schema) -> bool:
    """Checks if storing ``meta`` would leave ``remote`` unchanged.

    Additional identifiers and predicates managed by the repository itself
    are ignored.
    """
    wanted = {(p, o) for _, p, o in meta}
    stored = {(p, o) for _, p, o in remote.metadata.triples((remote.node, None, None))}
    if not wanted <= stored:
        return False
    return all(p == schema.id or p in schema.managed for p, _ in stored - wanted)


def find(repo, identifier):
    try:
        return repo.get_resource_by_id(identifier)
    except NotFound:
        return None


def update_or_create(repo, identifier, meta: rdflib.Graph, existing: RemoteResource = None,
                     lookup: bool = True):
    """Stores ``meta`` under ``identifier``, returns the resource and the action taken."""
    if existing is None and lookup:
        existing = find(repo, identifier)
    if existing is None:
        res = repo.create_resource(meta)
        log.info("created %s as %s", identifier, res.uri)
        return res, "created"
    if same_metadata(existing, meta, repo.schema):
        log.info("unchanged %s (%s)", identifier, existing.uri)
        return existing, "unchanged"
    res = repo.update_metadata(existing, meta, UPDATE_OVERWRITE)
    log.info("updated %s (%s)", identifier, res.uri)
    return res, "updated"


def run_concurrently(fn: Callable, items: Iterable, concurrency: int, on_error: str,
                     report: ImportReport) -> Dict:
    """Calls ``fn`` for every item with at most ``concurrency`` calls in flight."""
    results = {}
    with ThreadPoolExecutor(max_workers=max(1, concurrency)) as pool:
        futures = {pool.submit(fn, item): item for item in items}
        for future in as_completed(futures):
            item = futures[future]
            try:
                results[item] = future.result()
            except RemoteRequestError as e:
                if on_error == ON_ERROR_FAIL:
                    for pending in futures:
                        pending.cancel()
                    raise
                log.error("failed to import %s: %s", item, e)
                report.failed += 1
    return results


class ImportBatch:
    """Ordered set of metadata to be stored, keyed by the object identifier."""

    def __init__(self):
        self._items: Dict[str, rdflib.Graph] = {}

    def add(self, identifier, meta: rdflib.Graph) -> bool:
        key = str(identifier)
        if key in self._items:
            log.info("skipping a duplicated identifier %s", key)
            return False
        self._items[key] = meta
        return True

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, identifier) -> bool:
        return str(identifier) in self._items

    def __iter__(self):
        return iter(self._items.items())

    def ids(self) -> list:
        return list(self._items)

    def submit(self, repo, read_concurrency: int = 3, write_concurrency: int = 3,
               on_error: str = ON_ERROR_FAIL) -> ImportReport:
        report = ImportReport()
        existing = run_concurrently(lambda i: find(repo, i), self._items,
                                    read_concurrency, on_error, report)
        pending = [i for i in self._items if i in existing]

        def write(identifier):
            return update_or_create(repo, identifier, self._items[identifier],
                                    existing[identifier], lookup=False)

        written = run_concurrently(write, pending, write_concurrency, on_error, report)
        for identifier in pending:
            if identifier not in written:
                continue
            res, action = written[identifier]
            setattr(report, action, getattr(report, action) + 1)
            report.imported.append(res.uri)
        return report

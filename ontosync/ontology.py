import hashlib
import logging
import os
import re
from datetime import datetime
from typing import Optional

import httpx
import rdflib
from rdflib.namespace import RDF, OWL
from rdflib.util import guess_format

from .batch import ImportBatch, find
from .config import DEFAULT_CONCURRENCY, DEFAULT_LANG
from .entities import Property, Restriction, RestrictionIdGenerator, checker_for
from .errors import ConfigurationError, NotFound, OntologyFormatError, UnsupportedHashError
from .metadata import copy_statements, ensure_label, set_resource
from .model import BinaryPayload, ImportReport, OwlObjectKind, is_blank, local_name
from .repo import UPDATE_MERGE, UPDATE_OVERWRITE
from .sweep import remove_obsolete_children
from .vocabulary import Vocabulary

log = logging.getLogger(__name__)

MIME_TYPES = {
    "xml": "application/rdf+xml",
    "turtle": "text/turtle",
    "nt": "application/n-triples",
    "json-ld": "application/ld+json",
}


class Ontology:

    def __init__(self, schema):
        self.schema = schema
        self.graph = rdflib.Graph()

    @property
    def root_collection_id(self) -> str:
        return self.schema.namespaces.ontology + "ontology"

    @property
    def binaries_collection_id(self) -> str:
        return self.schema.namespaces.id + "ontology-binaries"

    def _add_thing(self) -> None:
        self.graph.add((OWL.Thing, RDF.type, OWL.Class))

    def load_graph(self, graph: rdflib.Graph) -> None:
        self.graph = graph
        self._add_thing()

    def load_file(self, path: str, format: str = None) -> None:
        if not os.path.exists(path):
            raise ConfigurationError(f"ontology file {path} does not exist")
        graph = rdflib.Graph()
        try:
            graph.parse(path, format=format or guess_format(path))
        except Exception as e:
            raise OntologyFormatError(f"can not parse {path}: {e}") from e
        self.load_graph(graph)

    def load_repo(self, repo) -> None:
        """Reads the ontology objects currently stored in the repository."""
        resources = []
        for kind in OwlObjectKind:
            resources.extend(repo.search_by_relation(self.schema.parent, kind.value))

        ids = {}
        for res in resources:
            candidates = sorted(i for i in res.ids(self.schema.id) if not repo.is_repo_uri(i))
            preferred = [i for i in candidates if i.startswith(self.schema.namespaces.ontology)]
            ids[res.uri] = rdflib.URIRef((preferred or candidates or [res.uri])[0])

        graph = rdflib.Graph()
        for res in resources:
            for _, p, o in res.metadata.triples((res.node, None, None)):
                if isinstance(o, rdflib.URIRef) and str(o) in ids:
                    o = ids[str(o)]
                graph.add((ids[res.uri], p, o))
        self.load_graph(graph)

    def check(self, namespace: Optional[str] = None, verbose: bool = True) -> bool:
        """Validates restrictions and properties.

        Works on a copy of the graph so the loaded ontology stays untouched.
        Properties are checked only if they belong to ``namespace`` (when given).
        """
        graph = rdflib.Graph()
        graph += self.graph
        ids = RestrictionIdGenerator(self.schema.namespaces.ontology)

        result = True
        for node in list(graph.subjects(RDF.type, OWL.Restriction)):
            verdict = Restriction(graph, node, self.schema, ids).check(verbose)
            result &= verdict is not False
        for kind in (OwlObjectKind.DATATYPE_PROPERTY, OwlObjectKind.OBJECT_PROPERTY):
            for node in list(graph.subjects(RDF.type, kind.value)):
                if namespace and not str(node).startswith(namespace):
                    continue
                result &= Property(graph, node, self.schema).check(verbose) is not False
        return bool(result)

    def sanitize(self, node, identifier, parent_id) -> rdflib.Graph:
        """Prepares the repository metadata of an OWL object.

        ``identifier`` may differ from ``node`` (restrictions are imported
        under generated identifiers).
        """
        subject = rdflib.URIRef(str(identifier))
        meta = copy_statements(self.graph, node, rdflib.Graph(), subject)
        set_resource(meta, subject, self.schema.id, identifier)
        set_resource(meta, subject, self.schema.parent, parent_id)
        ensure_label(meta, subject, self.schema.label, identifier)
        return meta

    def create_collection(self, repo, identifier: str):
        res = find(repo, identifier)
        if res is None:
            subject = rdflib.URIRef(identifier)
            meta = rdflib.Graph()
            meta.add((subject, self.schema.label, rdflib.Literal(local_name(identifier), lang=DEFAULT_LANG)))
            meta.add((subject, self.schema.id, subject))
            res = repo.create_resource(meta)
            log.info("created collection %s as %s", identifier, res.uri)
        return res

    def stage(self, verbose: bool = False, report: ImportReport = None) -> ImportBatch:
        """Checks all OWL objects and collects the metadata of the valid ones.

        Modifies the graph (restrictions get replaced by generated identifiers,
        top-level classes become subclasses of owl:Thing).
        """
        report = report if report is not None else ImportReport()
        batch = ImportBatch()
        seen = set()
        ids = RestrictionIdGenerator(self.schema.namespaces.ontology)
        for kind in OwlObjectKind:
            log.info("### Checking %s", kind.value)
            for node in list(self.graph.subjects(RDF.type, kind.value)):
                entity = checker_for(kind, self.graph, node, self.schema, ids)
                verdict = entity.check(verbose)
                identifier = entity.get_id()

                if verdict is False:
                    log.info("skipping an invalid resource %s: %s", node, "; ".join(entity.diagnostics))
                    report.failed += 1
                elif verdict is None:
                    report.skipped += 1
                elif is_blank(identifier):
                    log.info("skipping an anonymous resource %s", identifier)
                    report.skipped += 1
                elif identifier in seen:
                    log.info("skipping a duplicated resource %s", identifier)
                    report.skipped += 1
                else:
                    batch.add(identifier, self.sanitize(node, identifier, kind.value))
                seen.add(identifier)
        return batch

    def import_(self, repo, verbose: bool = False, concurrency: int = DEFAULT_CONCURRENCY,
                retries: Optional[int] = None, deadline: Optional[float] = None) -> ImportReport:
        log.info("### Creating top-level collections")
        self.create_collection(repo, self.root_collection_id)
        for kind in OwlObjectKind:
            self.create_collection(repo, str(kind.value))

        report = ImportReport()
        batch = self.stage(verbose, report)

        log.info("### Importing %d resources", len(batch))
        report.merge(batch.submit(repo, concurrency, concurrency))

        log.info("### Removing obsolete resources")
        for kind in OwlObjectKind:
            report.deleted += remove_obsolete_children(
                repo, str(kind.value), self.schema.parent, report.imported,
                concurrency, retries, deadline, verbose,
            )
        log.info("%d created, %d updated, %d unchanged, %d deleted, %d invalid, %d skipped",
                 report.created, report.updated, report.unchanged, report.deleted,
                 report.failed, report.skipped)
        return report

    def import_owl_file(self, repo, path: str, meta: rdflib.Graph = None, verbose: bool = False):
        """Stores the ontology file itself, keeping older versions.

        The newest version always carries the ontology identifier.
        """
        s = self.schema
        level = logging.INFO if verbose else logging.DEBUG
        log.log(level, "### Updating the ontology binary")
        coll = self.create_collection(repo, self.binaries_collection_id)
        log.log(level, "    %s", coll.uri)

        cur_id = re.sub(r"[#/]$", "", s.namespaces.ontology)
        subject = rdflib.URIRef(cur_id)
        new_meta = rdflib.Graph()
        if meta is not None:
            for _, p, o in meta:
                new_meta.add((subject, p, o))
        new_meta.add((subject, s.id, rdflib.URIRef(f"{cur_id}/{datetime.now():%Y-%m-%d_%H:%M:%S}")))
        new_meta.add((subject, s.label, rdflib.Literal("Ontology file", lang=DEFAULT_LANG)))
        new_meta.add((subject, s.parent, rdflib.URIRef(coll.uri)))

        binary = BinaryPayload.from_file(path, MIME_TYPES.get(guess_format(path), "application/rdf+xml"))
        try:
            old = repo.get_resource_by_id(cur_id)
        except NotFound:
            log.log(level, "    no ontology binary - creating")
            new_meta.add((subject, s.id, subject))
            new = repo.create_resource(new_meta, binary)
            log.log(level, "      %s", new.uri)
            return new

        stored = old.literal(s.hash) or ""
        if not re.match(r"^(md5|sha1):", stored):
            raise UnsupportedHashError(stored)
        current = ("md5:" + hashlib.md5(binary.content).hexdigest(),
                   "sha1:" + hashlib.sha1(binary.content).hexdigest())
        if stored in current:
            log.log(level, "    ontology binary up to date")
            return old

        log.log(level, "    uploading a new version")
        new = repo.create_resource(new_meta, binary)
        log.log(level, "      %s", new.uri)

        # the old version has to lose the ontology identifier first
        old_meta = rdflib.Graph()
        for triple in old.metadata.triples((old.node, None, None)):
            old_meta.add(triple)
        old_meta.remove((old.node, s.id, subject))
        repo.update_metadata(old, old_meta, UPDATE_OVERWRITE)

        new_meta.add((subject, s.id, subject))
        new_meta.add((subject, s.is_new_version_of, old.node))
        return repo.update_metadata(new, new_meta, UPDATE_MERGE)

    def import_vocabularies(self, repo, verbose: bool = False, concurrency: int = DEFAULT_CONCURRENCY,
                            retries: Optional[int] = None, client: httpx.Client = None) -> int:
        """Mirrors every vocabulary referenced by the ontology, skipping the broken ones."""
        level = logging.INFO if verbose else logging.DEBUG
        log.log(level, "### Importing external vocabularies")
        urls = sorted({str(o) for o in self.graph.objects(None, self.schema.ontology.vocabs)})
        updated = 0
        for url in urls:
            log.log(level, "%s", url)
            vocabulary = Vocabulary(self.schema, client)
            try:
                vocabulary.load_url(url)
                vocabulary.scheme()
            except (httpx.HTTPError, OntologyFormatError) as e:
                log.warning("    skipping vocabulary %s: %s", url, e)
                continue
            updated += vocabulary.update(repo, concurrency, retries, verbose=verbose)
        return updated

import hashlib
import logging

import httpx
import rdflib
from rdflib.namespace import DC, RDF, SKOS, XSD

from .batch import ImportBatch
from .config import DEFAULT_CONCURRENCY, DEFAULT_LANG
from .errors import NotFound, OntologyFormatError
from .metadata import copy_statements, ensure_label, set_resource
from .model import BinaryPayload, ImportReport, is_blank
from .repo import UPDATE_MERGE
from .sweep import remove_obsolete_children

log = logging.getLogger(__name__)

ACCEPT = "text/turtle, application/rdf+xml, application/n-triples"


class Vocabulary:
    """A SKOS vocabulary mirrored as a repository collection of concepts."""

    def __init__(self, schema, client: httpx.Client = None):
        self.schema = schema
        self.client = client
        self.url = None
        self.graph = rdflib.Graph()

    def load_url(self, url: str) -> None:
        self.url = url
        client = self.client or httpx.Client(follow_redirects=True, timeout=60.0)
        try:
            resp = client.get(url, headers={"Accept": ACCEPT})
            resp.raise_for_status()
        finally:
            if self.client is None:
                client.close()
        mime = resp.headers.get("Content-Type", "text/turtle").split(";")[0].strip()
        self.graph = rdflib.Graph()
        try:
            self.graph.parse(data=resp.text, format=mime)
        except Exception as e:
            raise OntologyFormatError(f"can not parse vocabulary {url} ({mime}): {e}") from e

    def load_file(self, path: str, format: str = None) -> None:
        self.graph = rdflib.Graph()
        try:
            self.graph.parse(path, format=format)
        except Exception as e:
            raise OntologyFormatError(f"can not parse vocabulary {path}: {e}") from e
        self.url = str(self.scheme())

    def scheme(self):
        for node in self.graph.subjects(RDF.type, SKOS.ConceptScheme):
            return node
        raise OntologyFormatError(f"vocabulary {self.url} has no skos:ConceptScheme")

    def sanitize_scheme(self) -> rdflib.Graph:
        """Vocabulary top-level metadata quality is typically poor and has to be cleaned up."""
        s = self.schema
        node = self.scheme()
        subject = rdflib.URIRef(self.url)
        meta = rdflib.Graph()
        for p, o in self.graph.predicate_objects(node):
            if not is_blank(o):
                meta.add((subject, p, o))

        meta.add((subject, s.id, rdflib.URIRef(self.url)))
        meta.add((subject, s.id, node))

        # hasTopConcept and inScheme would point at each other
        meta.remove((subject, SKOS.hasTopConcept, None))

        if not any(isinstance(o, rdflib.Literal) for o in meta.objects(subject, s.label)):
            for title in self.graph.objects(node, DC.title):
                meta.add((subject, s.label, title))
        if not any(isinstance(o, rdflib.Literal) for o in meta.objects(subject, s.label)):
            meta.add((subject, s.label, rdflib.Literal(self.url, lang=DEFAULT_LANG)))

        preserve = (s.label, s.id, RDF.type)
        for p in set(meta.predicates(subject)):
            if p in preserve:
                continue
            if p.startswith(s.namespaces.ontology):
                meta.remove((subject, p, None))
                continue
            for o in list(meta.objects(subject, p)):
                if isinstance(o, rdflib.URIRef):
                    meta.remove((subject, p, o))
                    meta.add((subject, p, rdflib.Literal(str(o), datatype=XSD.anyURI)))
        return meta

    def sanitize_concept(self, concept) -> rdflib.Graph:
        s = self.schema
        meta = copy_statements(self.graph, concept, rdflib.Graph(), concept)
        for p in set(meta.predicates(concept)):
            if p.startswith(s.namespaces.ontology) and p not in (s.label, s.id):
                meta.remove((concept, p, None))
        set_resource(meta, concept, s.id, concept)
        set_resource(meta, concept, s.parent, self.url)
        for label in self.graph.objects(concept, SKOS.prefLabel):
            if (concept, s.label, None) not in meta:
                meta.add((concept, s.label, label))
        ensure_label(meta, concept, s.label, concept)
        return meta

    def update(self, repo, concurrency: int = DEFAULT_CONCURRENCY, retries: int = None,
               deadline: float = None, force: bool = False, verbose: bool = False) -> bool:
        s = self.schema
        level = logging.INFO if verbose else logging.DEBUG
        turtle = self.graph.serialize(format="turtle")
        scheme_meta = self.sanitize_scheme()

        try:
            coll = repo.get_resource_by_id(self.url)
            log.log(level, "  %s", coll.uri)
            digest = "sha1:" + hashlib.sha1(turtle.encode("utf-8")).hexdigest()
            if not force and coll.literal(s.hash) == digest:
                log.log(level, "    skipping the update - hashes match")
                return False
        except NotFound:
            coll = repo.create_resource(scheme_meta)
            log.log(level, "  created %s", coll.uri)
        repo.update_content(coll, BinaryPayload(turtle.encode("utf-8"), "vocabulary.ttl", "text/turtle"))
        repo.update_metadata(coll, scheme_meta, UPDATE_MERGE)

        batch = ImportBatch()
        for concept in sorted(self.graph.subjects(RDF.type, SKOS.Concept), key=str):
            if not is_blank(concept):
                batch.add(concept, self.sanitize_concept(concept))
        report: ImportReport = batch.submit(repo, concurrency, concurrency)
        log.log(level, "    %d concepts created, %d updated, %d unchanged",
                report.created, report.updated, report.unchanged)

        log.log(level, "    removing obsolete concepts")
        remove_obsolete_children(repo, self.url, s.parent, report.imported,
                                 concurrency, retries, deadline, verbose)
        return True

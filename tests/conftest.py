import hashlib
import logging
import threading
import time
from collections import Counter

import pytest
import rdflib
import yaml
from rdflib import Namespace

from ontosync.config import schema_from_dict
from ontosync.errors import NotFound, RemoteRequestError
from ontosync.model import RemoteResource

NS = Namespace("https://vocabs.example.org/schema#")

SCHEMA = {
    "id": str(NS.hasIdentifier),
    "parent": str(NS.isPartOf),
    "label": str(NS.hasTitle),
    "hash": str(NS.hasHash),
    "isNewVersionOf": str(NS.isNewVersionOf),
    "dateStart": str(NS.hasCoverageStartDate),
    "dateEnd": str(NS.hasCoverageEndDate),
    "url": str(NS.hasUrl),
    "version": str(NS.hasVersion),
    "info": str(NS.hasVersionInfo),
    "namespaces": {
        "id": "https://id.example.org/",
        "ontology": str(NS),
    },
    "ontology": {
        "vocabs": str(NS.vocabs),
        "langTag": str(NS.langTag),
        "recommendedClass": str(NS.recommendedClass),
        "defaultValue": str(NS.defaultValue),
    },
    "managed": [str(NS.hasUpdatedDate)],
}

PREFIXES = """
@prefix : <https://vocabs.example.org/schema#> .
@prefix owl: <http://www.w3.org/2002/07/owl#> .
@prefix rdf: <http://www.w3.org/1999/02/22-rdf-syntax-ns#> .
@prefix rdfs: <http://www.w3.org/2000/01/rdf-schema#> .
@prefix xsd: <http://www.w3.org/2001/XMLSchema#> .
@prefix skos: <http://www.w3.org/2004/02/skos/core#> .
@prefix dc: <http://purl.org/dc/elements/1.1/> .
"""

ONTOLOGY = PREFIXES + """
:Agent a owl:Class ; rdfs:label "Agent"@en .
:Person a owl:Class ;
    rdfs:subClassOf :Agent ;
    rdfs:subClassOf [
        a owl:Restriction ;
        owl:onProperty :hasName ;
        owl:maxCardinality "1"^^xsd:nonNegativeInteger
    ] .
:Place a owl:Class ; rdfs:comment "" .
:hasName a owl:DatatypeProperty ;
    rdfs:domain :Agent ;
    rdfs:range xsd:string ;
    :langTag "true" .
:hasLocation a owl:ObjectProperty ;
    rdfs:domain :Agent ;
    rdfs:range :Place .
:hasTitle a owl:AnnotationProperty .
"""


def make_graph(turtle: str) -> rdflib.Graph:
    graph = rdflib.Graph()
    graph.parse(data=PREFIXES + turtle, format="turtle")
    return graph


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logger = logging.getLogger("ontosync")
    logger.handlers[:] = []
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


@pytest.fixture
def schema():
    return schema_from_dict(SCHEMA)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "schema": SCHEMA,
        "repository": {"url": FakeRepo.base_url},
        "concurrency": 2,
    }))
    return str(path)


@pytest.fixture
def ontology_file(tmp_path):
    path = tmp_path / "ontology.ttl"
    path.write_text(ONTOLOGY)
    return str(path)


class FakeRepo:
    """In-memory repository with the same interface as ontosync.repo.Repo."""

    base_url = "https://repo.example.org/api"

    def __init__(self, schema, failing=None, delete_delay=0.0):
        self.schema = schema
        self.resources = {}
        self.content = {}
        self.calls = Counter()
        # uri -> number of deletions failing before one succeeds (-1: always)
        self.failing = dict(failing or {})
        self.delete_delay = delete_delay
        self.in_flight = 0
        self.max_in_flight = 0
        self._n = 0
        self._lock = threading.Lock()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        pass

    def is_repo_uri(self, value):
        return str(value).startswith(self.base_url + "/")

    def _copy(self, res):
        copy = RemoteResource(uri=res.uri)
        for triple in res.metadata:
            copy.metadata.add(triple)
        return copy

    def add(self, meta, uri=None):
        with self._lock:
            if uri is None:
                self._n += 1
                uri = f"{self.base_url}/{self._n}"
            res = RemoteResource(uri=uri)
            for _, p, o in meta:
                res.metadata.add((res.node, p, o))
            self.resources[uri] = res
        return self._copy(res)

    def search_by_relation(self, prop, value):
        self.calls["search"] += 1
        with self._lock:
            found = [self._copy(r) for r in self.resources.values()
                     if (r.node, rdflib.URIRef(str(prop)), rdflib.URIRef(str(value))) in r.metadata]
        return sorted(found, key=lambda r: r.uri)

    def get_resource_by_id(self, identifier):
        found = self.search_by_relation(self.schema.id, identifier)
        if not found:
            raise NotFound(str(identifier))
        return found[0]

    def create_resource(self, meta, binary=None):
        self.calls["create"] += 1
        res = self.add(meta)
        if binary is not None:
            self.update_content(res, binary)
        return self._copy(self.resources[res.uri])

    def update_metadata(self, res, meta, mode="overwrite"):
        self.calls["update"] += 1
        with self._lock:
            stored = self.resources[res.uri]
            if mode == "overwrite":
                stored.metadata = rdflib.Graph()
            else:
                for _, p, _ in meta:
                    stored.metadata.remove((stored.node, p, None))
            for _, p, o in meta:
                stored.metadata.add((stored.node, p, o))
        return self._copy(stored)

    def update_content(self, res, binary):
        self.calls["content"] += 1
        with self._lock:
            stored = self.resources[res.uri]
            self.content[res.uri] = binary.content
            stored.metadata.remove((stored.node, self.schema.hash, None))
            digest = "sha1:" + hashlib.sha1(binary.content).hexdigest()
            stored.metadata.add((stored.node, self.schema.hash, rdflib.Literal(digest)))
        return res

    def delete_resource(self, res, tombstone=True):
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delete_delay:
                time.sleep(self.delete_delay)
            with self._lock:
                remaining = self.failing.get(res.uri, 0)
                if remaining != 0:
                    self.failing[res.uri] = remaining - 1 if remaining > 0 else remaining
                    self.calls["failed_delete"] += 1
                    raise RemoteRequestError(f"DELETE {res.uri} failed", url=res.uri, status_code=503)
                del self.resources[res.uri]
                self.calls["delete"] += 1
        finally:
            with self._lock:
                self.in_flight -= 1

    def ids(self):
        return {str(o) for r in self.resources.values() for o in r.metadata.objects(r.node, self.schema.id)}


@pytest.fixture
def repo(schema):
    return FakeRepo(schema)

import logging
from typing import Optional, Tuple

import rdflib
from rdflib.namespace import XSD

from .config import DEFAULT_LANG
from .errors import OntologyFormatError
from .model import is_blank, local_name

log = logging.getLogger(__name__)


def copy_statements(source: rdflib.Graph, node, meta: rdflib.Graph, subject) -> rdflib.Graph:
    """Copies all non-empty literal and non-blank resource values of ``node`` to ``subject``."""
    for p, o in source.predicate_objects(node):
        if isinstance(o, rdflib.Literal):
            if str(o) == "":
                continue
            if o.language is None and o.datatype in (None, XSD.string):
                o = rdflib.Literal(str(o), lang=DEFAULT_LANG)
            meta.add((subject, p, o))
        elif not is_blank(o):
            meta.add((subject, p, o))
    return meta


def set_resource(meta: rdflib.Graph, subject, prop, value) -> None:
    meta.remove((subject, prop, None))
    meta.add((subject, prop, rdflib.URIRef(str(value))))


def ensure_label(meta: rdflib.Graph, subject, label_prop, identifier) -> None:
    for value in meta.objects(subject, label_prop):
        if isinstance(value, rdflib.Literal):
            return
    meta.add((subject, label_prop, rdflib.Literal(local_name(identifier), lang=DEFAULT_LANG)))


def from_file(path: str, format: str = None) -> Tuple[rdflib.Graph, rdflib.term.Node]:
    """Reads metadata from an RDF file, returns it with the first described subject."""
    graph = rdflib.Graph()
    try:
        graph.parse(path, format=format)
    except Exception as e:
        raise OntologyFormatError(f"can not parse {path}: {e}") from e
    for subject in graph.subjects():
        meta = rdflib.Graph()
        for triple in graph.triples((subject, None, None)):
            meta.add(triple)
        return meta, subject
    raise OntologyFormatError(f"no valid graph node found in {path}")


def _add(meta, subject, prop, value, what: str) -> None:
    if prop is None:
        log.warning("schema defines no property for the ontology %s, skipping it", what)
        return
    meta.add((subject, prop, value))


def enrich_from_args(meta: rdflib.Graph, subject, schema, version: Optional[str] = None,
                     date: Optional[str] = None, url: Optional[str] = None,
                     info: Optional[str] = None) -> rdflib.Graph:
    if date:
        dtype = XSD.dateTime if "T" in date else XSD.date
        _add(meta, subject, schema.date_start, rdflib.Literal(date, datatype=dtype), "date")
        _add(meta, subject, schema.date_end, rdflib.Literal(date, datatype=dtype), "date")
    if url:
        _add(meta, subject, schema.url, rdflib.Literal(url, datatype=XSD.anyURI), "url")
    if version:
        _add(meta, subject, schema.version, rdflib.Literal(version), "version")
    if info:
        _add(meta, subject, schema.info, rdflib.Literal(info, lang="und"), "info")
    return meta

"""Checkers validating and normalizing single OWL objects of an ontology graph.

Every checker works on one node of a shared :class:`rdflib.Graph` and may
modify the graph while checking. :meth:`Entity.check` returns ``True`` when
the node should be imported, ``False`` when it breaks one of the rules and
``None`` when it should be skipped without being reported as invalid.
"""
import hashlib
import logging

import rdflib
from rdflib.namespace import RDF, RDFS, OWL, XSD

from .model import OwlObjectKind

log = logging.getLogger(__name__)

LITERAL_TYPES = frozenset([
    XSD.boolean,
    XSD.date, XSD.time, XSD.dateTime, XSD.duration,
    XSD.decimal, XSD.integer,
    XSD.negativeInteger, XSD.positiveInteger,
    XSD.nonNegativeInteger, XSD.nonPositiveInteger,
    XSD.long, XSD.int, XSD.short, XSD.byte,
    XSD.unsignedLong, XSD.unsignedInt, XSD.unsignedShort, XSD.unsignedByte,
    XSD.float, XSD.double,
    XSD.string, XSD.anyURI,
])

UNIVERSAL_ROOTS = (OWL.Thing, RDFS.Literal)

QUALIFIED_CARDINALITIES = {
    OWL.qualifiedCardinality: OWL.cardinality,
    OWL.minQualifiedCardinality: OWL.minCardinality,
    OWL.maxQualifiedCardinality: OWL.maxCardinality,
}

SUPPORTED_CARDINALITIES = {
    OWL.cardinality: (1,),
    OWL.minCardinality: (0, 1),
    OWL.maxCardinality: (1,),
}


def does_inherit(graph: rdflib.Graph, what, from_) -> bool:
    """Checks if ``what`` is ``from_`` or a (transitive) subclass of it."""
    if what == from_ or from_ in UNIVERSAL_ROOTS:
        return True
    visited = set()
    stack = [what]
    while stack:
        node = stack.pop()
        if node in visited:
            continue
        visited.add(node)
        for parent in graph.objects(node, RDFS.subClassOf):
            if parent == from_:
                return True
            stack.append(parent)
    return False


class RestrictionIdGenerator:
    """Issues identifiers replacing anonymous restrictions.

    The identifier is derived from the restriction content and the classes
    using it, so an unchanged ontology gets the same identifiers on every
    import. Identifiers already issued or already present in the graph get
    a numeric suffix.
    """

    def __init__(self, namespace: str):
        self.namespace = namespace
        self._issued = set()

    def generate(self, graph: rdflib.Graph, node, children) -> rdflib.URIRef:
        lines = sorted(
            f"{p} {o.n3()}" for p, o in graph.predicate_objects(node)
            if not isinstance(o, rdflib.BNode)
        )
        lines += sorted("_:" if isinstance(c, rdflib.BNode) else str(c) for c in children)
        digest = hashlib.sha1("\n".join(lines).encode("utf-8")).hexdigest()[:16]

        base = f"{self.namespace}restriction-{digest}"
        candidate = base
        n = 1
        while candidate in self._issued or (rdflib.URIRef(candidate), None, None) in graph:
            n += 1
            candidate = f"{base}-{n}"
        self._issued.add(candidate)
        return rdflib.URIRef(candidate)


class Entity:

    def __init__(self, graph: rdflib.Graph, node, schema):
        self.graph = graph
        self.node = node
        self.schema = schema
        self.diagnostics: list[str] = []

    def check(self, verbose: bool = False):
        return True

    def get_id(self):
        return self.node

    def _has(self, prop) -> bool:
        return any(str(v) != "" for v in self.graph.objects(self.node, prop))

    def _report(self, verbose: bool, msg: str) -> None:
        self.diagnostics.append(msg)
        log.log(logging.INFO if verbose else logging.DEBUG, "%s - %s", self.node, msg)

    def _fail(self, verbose: bool, msg: str) -> bool:
        self._report(verbose, msg)
        return False


class RdfClass(Entity):

    def is_top_level(self) -> bool:
        for parent in self.graph.objects(self.node, RDFS.subClassOf):
            if (parent, RDF.type, OWL.Class) in self.graph:
                return False
        return True

    def check(self, verbose: bool = False):
        if self.is_top_level() and self.node != OWL.Thing:
            self.graph.add((self.node, RDFS.subClassOf, OWL.Thing))
        return True


class Property(Entity):

    def check(self, verbose: bool = False):
        g = self.graph
        onto = self.schema.ontology
        result = True

        rng = g.value(self.node, RDFS.range)
        is_datatype = (self.node, RDF.type, OWL.DatatypeProperty) in g
        is_object = (self.node, RDF.type, OWL.ObjectProperty) in g
        uses_vocabs = self._has(onto.vocabs)

        if rng is None:
            result = self._fail(verbose, "has an empty range")

        if self._has(onto.lang_tag):
            if rng != XSD.string:
                result = self._fail(verbose, f"requires a language tag but its range {rng} is not xsd:string")
            if not is_datatype:
                result = self._fail(verbose, "requires a language tag but it's not a DatatypeProperty")

        if is_datatype and rng is not None and rng not in LITERAL_TYPES:
            result = self._fail(verbose, f"is a DatatypeProperty but its range {rng} doesn't indicate a literal value")

        if is_object and rng in LITERAL_TYPES and not (uses_vocabs and rng == XSD.anyURI):
            result = self._fail(verbose, f"is an ObjectProperty but its range {rng} indicates a literal value")

        if uses_vocabs:
            if is_datatype:
                result = self._fail(verbose, "uses a vocabulary but it's a DatatypeProperty")
            if rng is not None and rng != XSD.anyURI:
                result = self._fail(verbose, f"uses a vocabulary but its range {rng} is not xsd:anyURI")

        for value in g.objects(self.node, onto.recommended_class):
            if isinstance(value, rdflib.Literal):
                result = self._fail(verbose, f"recommended class {value!r} is a literal")

        return result


class Restriction(Entity):

    def __init__(self, graph, node, schema, id_generator: RestrictionIdGenerator = None):
        super().__init__(graph, node, schema)
        self.id_generator = id_generator or RestrictionIdGenerator(schema.namespaces.ontology)
        self.id = None

    def get_id(self):
        return self.id if self.id is not None else self.node

    def check(self, verbose: bool = False):
        g = self.graph

        # a restriction is meaningful only if some class inherits from it
        children = list(g.subjects(RDFS.subClassOf, self.node))
        if not children:
            return self._fail(verbose, "no classes inherit from the restriction")

        prop = g.value(self.node, OWL.onProperty)
        if prop is None:
            self._report(verbose, "it lacks owl:onProperty")
            log.warning("restriction %s lacks owl:onProperty", self.node)
        domain = g.value(prop, RDFS.domain) if prop is not None else None
        if domain is None:
            return self._fail(verbose, f"property {prop} has no rdfs:domain")
        if g.value(prop, RDFS.range) is None:
            return self._fail(verbose, f"property {prop} has no rdfs:range")

        for child in children:
            if not does_inherit(g, child, domain):
                return self._fail(
                    verbose,
                    f"restriction for class {child} and property {prop} - "
                    f"the class is not a subclass of property's domain ({domain})"
                )

        self._simplify(verbose)

        bounds = self._read_cardinalities(verbose)
        if bounds is None:
            return False

        mandatory = bounds.get(OWL.minCardinality, 0) >= 1 or bounds.get(OWL.cardinality) == 1
        if mandatory and self._property_has_default(prop):
            return self._fail(verbose, f"property {prop} is mandatory but has a default value")

        self.id = self.id_generator.generate(g, self.node, children)
        for child in children:
            g.remove((child, RDFS.subClassOf, self.node))
            g.add((child, RDFS.subClassOf, self.id))
        return True

    def _simplify(self, verbose: bool) -> None:
        g = self.graph
        qualified = (self.node, OWL.onClass, None) in g or (self.node, OWL.onDataRange, None) in g
        if not qualified:
            return
        self._report(verbose, "simplifying a qualified cardinality restriction")
        g.remove((self.node, OWL.onClass, None))
        g.remove((self.node, OWL.onDataRange, None))
        for src, dst in QUALIFIED_CARDINALITIES.items():
            for value in list(g.objects(self.node, src)):
                g.add((self.node, dst, value))
            g.remove((self.node, src, None))

    def _read_cardinalities(self, verbose: bool):
        bounds = {}
        valid = True
        for prop, allowed in SUPPORTED_CARDINALITIES.items():
            name = prop.split("#")[-1]
            for value in self.graph.objects(self.node, prop):
                try:
                    n = int(str(value))
                except ValueError:
                    valid = self._fail(verbose, f"owl:{name} value {value} is not an integer")
                    continue
                if n not in allowed:
                    supported = " or ".join(str(i) for i in allowed)
                    valid = self._fail(verbose, f"unsupported owl:{name} {n} (only {supported} is supported)")
                    continue
                bounds[prop] = n
        return bounds if valid else None

    def _property_has_default(self, prop) -> bool:
        return prop is not None and (prop, self.schema.ontology.default_value, None) in self.graph


CHECKERS = {
    OwlObjectKind.RESTRICTION: Restriction,
    OwlObjectKind.CLASS: RdfClass,
    OwlObjectKind.OBJECT_PROPERTY: Property,
    OwlObjectKind.DATATYPE_PROPERTY: Property,
}


def checker_for(kind: OwlObjectKind, graph: rdflib.Graph, node, schema,
                id_generator: RestrictionIdGenerator = None) -> Entity:
    cls = CHECKERS.get(kind, Entity)
    if cls is Restriction:
        return Restriction(graph, node, schema, id_generator)
    return cls(graph, node, schema)

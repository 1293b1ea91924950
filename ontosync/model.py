import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import rdflib
from rdflib.namespace import OWL

BNODE_ID = re.compile(r"^(_:)?genid[0-9]+$")


class OwlObjectKind(Enum):
    # restrictions go before classes and properties as checking them
    # rewrites subclass edges of the whole graph
    ANNOTATION_PROPERTY = OWL.AnnotationProperty
    RESTRICTION = OWL.Restriction
    CLASS = OWL.Class
    OBJECT_PROPERTY = OWL.ObjectProperty
    DATATYPE_PROPERTY = OWL.DatatypeProperty


def is_blank(node) -> bool:
    return isinstance(node, rdflib.BNode) or bool(BNODE_ID.match(str(node)))


def local_name(identifier) -> str:
    return re.sub(r"^.*[/#]", "", str(identifier))


@dataclass
class BinaryPayload:
    content: bytes
    filename: str
    mime_type: str

    @classmethod
    def from_file(cls, path: str, mime_type: str) -> "BinaryPayload":
        with open(path, "rb") as f:
            content = f.read()
        return cls(content=content, filename=path.replace("\\", "/").split("/")[-1], mime_type=mime_type)


@dataclass
class RemoteResource:
    uri: str
    metadata: rdflib.Graph = field(default_factory=rdflib.Graph, repr=False)

    @property
    def node(self) -> rdflib.URIRef:
        return rdflib.URIRef(self.uri)

    def ids(self, id_prop) -> List[str]:
        return [str(o) for o in self.metadata.objects(self.node, id_prop)]

    def literal(self, prop) -> Optional[str]:
        value = self.metadata.value(self.node, prop)
        return str(value) if value is not None else None


@dataclass
class ImportReport:
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    failed: int = 0
    deleted: int = 0
    imported: List[str] = field(default_factory=list)

    @property
    def changes(self) -> int:
        return self.created + self.updated + self.deleted

    def merge(self, other: "ImportReport") -> None:
        self.created += other.created
        self.updated += other.updated
        self.unchanged += other.unchanged
        self.skipped += other.skipped
        self.failed += other.failed
        self.deleted += other.deleted
        self.imported.extend(other.imported)

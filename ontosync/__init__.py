from .config import Config, Schema, load_config
from .entities import Entity, Property, RdfClass, Restriction, checker_for, does_inherit
from .errors import OntoSyncError, ReconciliationError
from .ontology import Ontology
from .repo import Repo
from .sweep import remove_obsolete_children

__version__ = "0.1.0"

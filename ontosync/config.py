import os
from typing import FrozenSet, Optional

import yaml
from pydantic import BaseModel, Field, NonNegativeInt, PositiveInt, ValidationError, field_validator
from rdflib import URIRef

from .errors import ConfigurationError

DEFAULT_CONCURRENCY = 3
DEFAULT_LANG = "en"


def _validation_message(exc: ValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = " -> ".join(str(part) for part in error["loc"])
        messages.append(f"{location}: {error['msg']}")
    return "\n  ".join(messages)


class Namespaces(BaseModel):
    id: str
    ontology: str

    model_config = {"frozen": True}


class OntologyProperties(BaseModel):
    """Annotation properties steering the property checks."""
    vocabs: str
    lang_tag: str = Field(alias="langTag")
    recommended_class: str = Field(alias="recommendedClass")
    default_value: str = Field(alias="defaultValue")

    @field_validator("vocabs", "lang_tag", "recommended_class", "default_value")
    @classmethod
    def to_uri(cls, value: str) -> URIRef:
        return URIRef(value)

    model_config = {"frozen": True, "populate_by_name": True}


class Schema(BaseModel):
    """Predicates playing the semantic roles used by the import."""
    id: str
    parent: str
    label: str
    hash: str
    is_new_version_of: str = Field(alias="isNewVersionOf")
    namespaces: Namespaces
    ontology: OntologyProperties
    date_start: Optional[str] = Field(default=None, alias="dateStart")
    date_end: Optional[str] = Field(default=None, alias="dateEnd")
    url: Optional[str] = None
    version: Optional[str] = None
    info: Optional[str] = None
    # predicates maintained by the repository itself
    managed: FrozenSet[str] = frozenset()

    @field_validator("id", "parent", "label", "hash", "is_new_version_of",
                     "date_start", "date_end", "url", "version", "info")
    @classmethod
    def to_uri(cls, value: Optional[str]) -> Optional[URIRef]:
        return URIRef(value) if value is not None else None

    @field_validator("managed")
    @classmethod
    def to_uris(cls, value: FrozenSet[str]) -> FrozenSet[URIRef]:
        return frozenset(URIRef(p) for p in value)

    model_config = {"frozen": True, "populate_by_name": True}


class RepositoryConfig(BaseModel):
    url: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None


class Config(BaseModel):
    ontology_schema: Schema = Field(alias="schema")
    repository: RepositoryConfig = Field(default_factory=RepositoryConfig)
    concurrency: PositiveInt = DEFAULT_CONCURRENCY
    retries: Optional[NonNegativeInt] = None
    ontology_file: Optional[str] = Field(default=None, alias="ontologyFile")

    @field_validator("repository", mode="before")
    @classmethod
    def empty_repository(cls, value):
        return {} if value is None else value

    model_config = {"populate_by_name": True}


def schema_from_dict(data: dict) -> Schema:
    try:
        return Schema.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError("invalid schema:\n  " + _validation_message(exc)) from exc


def load_config(path: str) -> Config:
    if not os.path.exists(path):
        raise ConfigurationError(f"config file {path} does not exist")
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"config file {path} is not valid YAML: {e}") from e

    try:
        return Config.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid config file {path}:\n  " + _validation_message(exc)) from exc

import pytest
import yaml
from rdflib import URIRef

from conftest import NS, SCHEMA
from ontosync.config import DEFAULT_CONCURRENCY, load_config, schema_from_dict
from ontosync.errors import ConfigurationError


def write_config(tmp_path, data):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


def test_load_config(config_file):
    cfg = load_config(config_file)
    assert cfg.repository.url == "https://repo.example.org/api"
    assert cfg.concurrency == 2
    assert cfg.retries is None
    assert cfg.ontology_schema.id == URIRef(str(NS.hasIdentifier))
    assert isinstance(cfg.ontology_schema.id, URIRef)
    assert cfg.ontology_schema.ontology.lang_tag == NS.langTag
    assert cfg.ontology_schema.namespaces.ontology == str(NS)
    assert NS.hasUpdatedDate in cfg.ontology_schema.managed


def test_defaults(tmp_path):
    cfg = load_config(write_config(tmp_path, {"schema": SCHEMA, "retries": 5, "repository": None}))
    assert cfg.concurrency == DEFAULT_CONCURRENCY
    assert cfg.retries == 5
    assert cfg.repository.url is None


@pytest.mark.parametrize("key, value", [
    ("concurrency", "many"),
    ("concurrency", 0),
    ("retries", -1),
])
def test_invalid_numbers(tmp_path, key, value):
    path = write_config(tmp_path, {"schema": SCHEMA, key: value})
    with pytest.raises(ConfigurationError, match=key):
        load_config(path)


def test_optional_schema_properties():
    data = {k: v for k, v in SCHEMA.items() if k not in ("dateStart", "dateEnd", "url")}
    schema = schema_from_dict(data)
    assert schema.date_start is None
    assert schema.url is None


@pytest.mark.parametrize("key", ["id", "parent", "label", "hash", "isNewVersionOf"])
def test_missing_schema_property(key):
    data = {k: v for k, v in SCHEMA.items() if k != key}
    with pytest.raises(ConfigurationError, match=key):
        schema_from_dict(data)


def test_missing_namespaces():
    data = dict(SCHEMA, namespaces={"id": "https://id.example.org/"})
    with pytest.raises(ConfigurationError, match="ontology"):
        schema_from_dict(data)


def test_missing_schema_section(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("repository:\n  url: http://localhost\n")
    with pytest.raises(ConfigurationError, match="schema"):
        load_config(str(path))


def test_invalid_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("schema: [unclosed\n")
    with pytest.raises(ConfigurationError):
        load_config(str(path))

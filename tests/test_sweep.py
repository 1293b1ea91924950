import pytest
import rdflib

from conftest import NS, FakeRepo
from ontosync.errors import ReconciliationError
from ontosync.sweep import remove_obsolete_children

COLLECTION = str(NS.collection)


def fill(repo, schema, names):
    uris = {}
    for name in names:
        meta = rdflib.Graph()
        meta.add((NS[name], schema.id, NS[name]))
        meta.add((NS[name], schema.parent, rdflib.URIRef(COLLECTION)))
        uris[name] = repo.add(meta).uri
    return uris


def test_removes_only_obsolete(schema, repo):
    uris = fill(repo, schema, "abc")
    deleted = remove_obsolete_children(repo, COLLECTION, schema.parent, [uris["a"], uris["b"]])
    assert deleted == 1
    assert set(repo.resources) == {uris["a"], uris["b"]}


def test_nothing_to_remove(schema, repo):
    uris = fill(repo, schema, "ab")
    assert remove_obsolete_children(repo, COLLECTION, schema.parent, list(uris.values())) == 0
    assert repo.calls["delete"] == 0


def test_failed_deletion_is_retried(schema):
    repo = FakeRepo(schema)
    uris = fill(repo, schema, "abc")
    repo.failing[uris["c"]] = 2
    deleted = remove_obsolete_children(repo, COLLECTION, schema.parent, [uris["a"]],
                                       concurrency=2, retries=2, backoff=0)
    assert deleted == 2
    assert repo.calls["failed_delete"] == 2
    assert set(repo.resources) == {uris["a"]}


def test_retries_exhausted(schema):
    repo = FakeRepo(schema)
    uris = fill(repo, schema, "abc")
    repo.failing[uris["c"]] = -1
    with pytest.raises(ReconciliationError) as exc:
        remove_obsolete_children(repo, COLLECTION, schema.parent, [uris["a"], uris["b"]],
                                 concurrency=3, backoff=0)
    assert exc.value.outstanding == [uris["c"]]
    assert exc.value.collection_id == COLLECTION
    # first attempt and one retry round per unit of concurrency
    assert repo.calls["failed_delete"] == 4
    assert uris["a"] in repo.resources and uris["b"] in repo.resources


def test_concurrency_limit(schema):
    repo = FakeRepo(schema, delete_delay=0.05)
    fill(repo, schema, "abcdefgh")
    assert remove_obsolete_children(repo, COLLECTION, schema.parent, [], concurrency=3) == 8
    assert 1 <= repo.max_in_flight <= 3


def test_deadline(schema):
    repo = FakeRepo(schema, delete_delay=0.5)
    fill(repo, schema, "abcd")
    with pytest.raises(ReconciliationError) as exc:
        remove_obsolete_children(repo, COLLECTION, schema.parent, [], concurrency=1, deadline=0.1)
    assert "deadline exceeded" in str(exc.value)
    # the deletion in flight when the deadline expired is awaited, the queued ones are cancelled
    assert repo.calls["delete"] == 1
    assert len(exc.value.outstanding) == 3
    assert set(exc.value.outstanding) == set(repo.resources)


def test_deadline_stops_retries(schema):
    repo = FakeRepo(schema)
    uris = fill(repo, schema, "ab")
    repo.failing[uris["b"]] = -1
    with pytest.raises(ReconciliationError) as exc:
        remove_obsolete_children(repo, COLLECTION, schema.parent, [uris["a"]],
                                 retries=1000, deadline=0.3, backoff=0.05)
    assert exc.value.outstanding == [uris["b"]]
    assert "deadline exceeded" in str(exc.value)
    assert repo.calls["failed_delete"] < 1000

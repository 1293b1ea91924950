"""Client for the repository REST API storing the ontology objects.

Resource metadata is exchanged as N-Triples. A resource is addressed by its
repository URI (``{base_url}/{n}``) and can be found by any of its
identifiers through the search endpoint.
"""
import logging
from typing import List, Optional

import httpx
import rdflib

from .errors import NotFound, RemoteRequestError
from .model import BinaryPayload, RemoteResource

log = logging.getLogger(__name__)

RDF_MIME = "application/n-triples"
UPDATE_OVERWRITE = "overwrite"
UPDATE_MERGE = "merge"


def _parse(text: str) -> rdflib.Graph:
    graph = rdflib.Graph()
    if text.strip():
        graph.parse(data=text, format="nt")
    return graph


def _serialize(meta: rdflib.Graph, subject) -> str:
    """Serializes metadata describing a single (possibly blank) subject as ``subject``."""
    graph = rdflib.Graph()
    for s, p, o in meta:
        graph.add((subject, p, o))
    return graph.serialize(format="nt")


class Repo:

    def __init__(self, base_url: str, user: str = None, password: str = None,
                 schema=None, client: httpx.Client = None, timeout: float = 60.0):
        self.base_url = base_url.rstrip("/")
        self.schema = schema
        if client is None:
            auth = (user, password) if user else None
            client = httpx.Client(auth=auth, timeout=timeout, follow_redirects=True)
        self.client = client

    def close(self) -> None:
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        headers = kwargs.pop("headers", {})
        try:
            resp = self.client.request(method, url, headers=headers, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RemoteRequestError(
                f"{method} {url} failed with {e.response.status_code}: {e.response.text[:200]}",
                url=url, status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise RemoteRequestError(f"{method} {url} failed: {e}", url=url) from e
        return resp

    def _resource(self, uri: str, text: str) -> RemoteResource:
        graph = _parse(text)
        res = RemoteResource(uri=uri)
        for triple in graph.triples((rdflib.URIRef(uri), None, None)):
            res.metadata.add(triple)
        return res

    def is_repo_uri(self, value) -> bool:
        return str(value).startswith(self.base_url + "/")

    # reading

    def search(self, terms: List[tuple]) -> List[RemoteResource]:
        """Finds resources matching all (property, value) pairs."""
        params = []
        for prop, value in terms:
            params.append(("property[]", str(prop)))
            params.append(("value[]", str(value)))
        params.append(("readMode", "resource"))
        resp = self._request("GET", f"{self.base_url}/search", params=params,
                             headers={"Accept": RDF_MIME})
        graph = _parse(resp.text)
        found = []
        for subject in sorted(set(graph.subjects()), key=str):
            if not self.is_repo_uri(subject):
                continue
            res = RemoteResource(uri=str(subject))
            for triple in graph.triples((subject, None, None)):
                res.metadata.add(triple)
            found.append(res)
        return found

    def search_by_relation(self, prop, value) -> List[RemoteResource]:
        return self.search([(prop, value)])

    def get_resource_by_id(self, identifier) -> RemoteResource:
        found = self.search([(self.schema.id, identifier)])
        if not found:
            raise NotFound(str(identifier))
        if len(found) > 1:
            log.warning("identifier %s is used by %d resources, using %s", identifier, len(found), found[0].uri)
        return found[0]

    # writing

    def create_resource(self, meta: rdflib.Graph, binary: Optional[BinaryPayload] = None) -> RemoteResource:
        if binary is None:
            resp = self._request("POST", f"{self.base_url}/metadata",
                                 content=_serialize(meta, rdflib.BNode("new")),
                                 headers={"Content-Type": RDF_MIME, "Accept": RDF_MIME})
            uri = resp.headers["Location"]
            return self._resource(uri, resp.text)

        resp = self._request("POST", self.base_url, content=binary.content, headers={
            "Content-Type": binary.mime_type,
            "Content-Disposition": f'attachment; filename="{binary.filename}"',
        })
        res = RemoteResource(uri=resp.headers["Location"])
        return self.update_metadata(res, meta, UPDATE_MERGE)

    def update_metadata(self, res: RemoteResource, meta: rdflib.Graph,
                        mode: str = UPDATE_OVERWRITE) -> RemoteResource:
        resp = self._request("PATCH", f"{res.uri}/metadata",
                             content=_serialize(meta, res.node),
                             headers={"Content-Type": RDF_MIME, "Accept": RDF_MIME, "X-Patch-Mode": mode})
        res.metadata = self._resource(res.uri, resp.text).metadata
        return res

    def update_content(self, res: RemoteResource, binary: BinaryPayload) -> RemoteResource:
        self._request("PUT", res.uri, content=binary.content, headers={
            "Content-Type": binary.mime_type,
            "Content-Disposition": f'attachment; filename="{binary.filename}"',
        })
        return res

    def delete_resource(self, res: RemoteResource, tombstone: bool = True) -> None:
        self._request("DELETE", res.uri)
        if tombstone:
            self._request("DELETE", f"{res.uri}/tombstone")

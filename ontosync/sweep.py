import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Iterable, Optional

from tenacity import Retrying, retry_if_result, stop_after_attempt, stop_after_delay, wait_random_exponential

from .config import DEFAULT_CONCURRENCY
from .errors import ReconciliationError, RemoteRequestError

log = logging.getLogger(__name__)

RETRY_BACKOFF = 0.5
RETRY_MAX_WAIT = 10


def _retry_policy(collection_id, retries: int, deadline: Optional[float], backoff: float) -> Retrying:
    """Repeats a deletion round as long as it returns failed deletions."""
    stop = stop_after_attempt(retries + 1)
    if deadline is not None:
        stop = stop | stop_after_delay(deadline)

    def before_sleep(state):
        log.warning("%s: retrying %d failed deletion(s), round %d of %d",
                    collection_id, len(state.outcome.result()), state.attempt_number, retries)

    return Retrying(
        stop=stop,
        wait=wait_random_exponential(multiplier=backoff, max=RETRY_MAX_WAIT),
        retry=retry_if_result(bool),
        before_sleep=before_sleep,
        # exhausted: hand back the deletions still failing
        retry_error_callback=lambda state: state.outcome.result(),
    )


def remove_obsolete_children(repo, collection_id, parent_prop, imported: Iterable[str],
                             concurrency: int = DEFAULT_CONCURRENCY,
                             retries: Optional[int] = None,
                             deadline: Optional[float] = None,
                             verbose: bool = False,
                             backoff: float = RETRY_BACKOFF) -> int:
    """Deletes resources of a collection which were not imported in the current run.

    Deletions run with at most ``concurrency`` requests in flight. Failed
    deletions are retried with exponential backoff for up to ``retries``
    further rounds (by default as many as ``concurrency``). ``deadline``
    limits the whole sweep in seconds. When it expires, queued deletions are
    cancelled and the ones already sent are awaited, so the sweep may
    overrun the deadline by one request.

    Returns the number of deleted resources. Raises
    :class:`~ontosync.errors.ReconciliationError` if any obsolete resource
    is left.
    """
    level = logging.INFO if verbose else logging.DEBUG
    if retries is None:
        retries = concurrency
    keep = set(imported)
    children = repo.search_by_relation(parent_prop, collection_id)
    obsolete = [res for res in children if res.uri not in keep]
    log.log(level, "%s: %d resources, %d obsolete", collection_id, len(children), len(obsolete))
    if not obsolete:
        return 0

    expires = time.monotonic() + deadline if deadline is not None else None
    deleted = 0
    pending = obsolete

    def collect(futures, done):
        nonlocal deleted
        failed = []
        for future in done:
            res = futures[future]
            try:
                future.result()
            except RemoteRequestError as e:
                log.warning("failed to delete %s: %s", res.uri, e)
                failed.append(res)
            else:
                deleted += 1
                log.log(level, "deleted %s", res.uri)
        return failed

    with ThreadPoolExecutor(max_workers=max(1, concurrency)) as pool:

        def delete_round():
            nonlocal pending
            futures = {pool.submit(repo.delete_resource, res): res for res in pending}
            timeout = None if expires is None else max(0.0, expires - time.monotonic())
            done, not_done = wait(futures, timeout=timeout)
            pending = collect(futures, done)
            if not_done:
                cancelled = [f for f in not_done if f.cancel()]
                started = [f for f in not_done if not f.cancelled()]
                # requests already sent can not be recalled, wait for their outcome
                pending += collect(futures, wait(started).done)
                outstanding = [futures[f].uri for f in cancelled] + [res.uri for res in pending]
                raise ReconciliationError(collection_id, outstanding, "deadline exceeded")
            return pending

        left = _retry_policy(collection_id, retries, deadline, backoff)(delete_round)

    if left:
        reason = "deadline exceeded" if expires is not None and time.monotonic() >= expires else None
        raise ReconciliationError(collection_id, [res.uri for res in left], reason)
    return deleted

"""HTTP client for the external snapshot source (a spreadsheet webhook)."""

import json
import threading

import requests

from .exceptions import SnapshotFetchError, SnapshotSuperseded
from .ingest import parse_payload, to_sync_payload
from .logger import get_sync_logger
from .schemas import Snapshot

logger = get_sync_logger("allocation-service")


class SnapshotFetcher:
    """Pulls full snapshots from, and pushes local changes to, the sync webhook.

    Every ``fetch`` call takes a generation number. When a fetch finishes
    after a newer one has started, its payload is discarded and
    ``SnapshotSuperseded`` is raised, so stale data can never be applied over
    fresher data. Starting a new fetch also closes the session of the one it
    supersedes.

    Attributes:
        url: Webhook URL serving the snapshot document.
        timeout: Seconds allowed for connect and for read.
    """

    def __init__(self, url: str, timeout: float = 10.0):
        self.url = url
        self.timeout = timeout
        self._lock = threading.Lock()
        self._generation = 0
        self._sessions: dict[int, requests.Session] = {}

    @property
    def generation(self) -> int:
        return self._generation

    def supersede(self) -> int:
        """Invalidate every fetch in flight and return the new generation.

        Used when a snapshot arrives by another route (posted directly or
        from Kafka); an older fetch that completes afterwards is discarded.
        """
        with self._lock:
            return self._advance()

    def is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _advance(self) -> int:
        self._generation += 1
        generation = self._generation
        for stale_generation, stale in list(self._sessions.items()):
            logger.info(f"Aborting snapshot fetch #{stale_generation}, superseded by #{generation}")
            stale.close()
            del self._sessions[stale_generation]
        return generation

    def _begin(self) -> tuple[int, requests.Session]:
        with self._lock:
            generation = self._advance()
            session = requests.Session()
            self._sessions[generation] = session
            return generation, session

    def _finish(self, generation: int) -> bool:
        """Drop the session for ``generation``; True when it is still the latest fetch."""
        with self._lock:
            session = self._sessions.pop(generation, None)
            if session is not None:
                session.close()
            return generation == self._generation

    def fetch(self) -> tuple[int, Snapshot]:
        """Fetch and normalize the current snapshot.

        The generation is returned with the snapshot so the caller can check
        ``is_current`` again right before applying it.

        Returns:
            tuple[int, Snapshot]: the fetch generation and the normalized
            items and order lines.

        Raises:
            SnapshotFetchError: On timeout, connection failure, HTTP error or a
                body that is not JSON.
            SnapshotSuperseded: When a newer fetch started while this one ran.
        """
        generation, session = self._begin()
        logger.info(f"Fetching snapshot #{generation} from {self.url}")
        try:
            response = session.get(self.url, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.Timeout as e:
            self._finish(generation)
            logger.error(f"Snapshot fetch #{generation} timed out after {self.timeout}s")
            raise SnapshotFetchError(f"Timed out after {self.timeout}s", url=self.url) from e
        except requests.exceptions.JSONDecodeError as e:
            self._finish(generation)
            logger.error(f"Snapshot fetch #{generation} returned a non-JSON body: {e}")
            raise SnapshotFetchError(f"Invalid JSON payload: {e}", url=self.url) from e
        except requests.RequestException as e:
            latest = self._finish(generation)
            if not latest:
                raise SnapshotSuperseded(generation, self._generation) from e
            logger.error(f"Snapshot fetch #{generation} failed: {e}")
            raise SnapshotFetchError(str(e), url=self.url) from e

        if not self._finish(generation):
            logger.warning(f"Discarding snapshot #{generation}, a newer fetch (#{self._generation}) is in flight")
            raise SnapshotSuperseded(generation, self._generation)

        snapshot = parse_payload(data)
        logger.info(f"Snapshot #{generation} fetched | items={len(snapshot.items)} | orders={len(snapshot.orders)}")
        return generation, snapshot

    def push(self, snapshot: Snapshot) -> bool:
        """Send local state upstream; failures are logged, never raised.

        Returns:
            bool: True if the webhook accepted the payload.
        """
        payload = to_sync_payload(snapshot.items, snapshot.orders)
        try:
            response = requests.post(
                self.url,
                headers={"Content-Type": "text/plain"},
                data=json.dumps(payload),
                timeout=self.timeout,
            )
            response.raise_for_status()
            logger.info(f"Pushed snapshot | items={len(snapshot.items)} | orders={len(snapshot.orders)}")
            return True
        except requests.RequestException as e:
            logger.error(f"Failed to push snapshot: {e}")
            return False

"""Serialized outbound save queue for one container.

Saves are enqueued as object references and uploaded by a single worker
thread. The queue is a two-state machine:

    IDLE --enqueue--> DRAINING --pass done, nothing pending--> IDLE

While DRAINING, further enqueues only append and set redrain_requested; the
running worker picks them up in its next pass. At most one pass runs at a
time, and every enqueued reference is eventually processed exactly once.
"""

import logging
import threading
from collections import deque
from enum import Enum
from typing import Callable, Deque, List, Optional

from .checksum import checksum
from .errors import PartialBatchFailure
from .layout import ObjectLayout
from .metadata_store import MetadataStore
from .models import DrainReport, ObjectRef
from .remote_protocol import RemoteStore

logger = logging.getLogger(__name__)

# Completed pass reports kept for observation; older ones are dropped
REPORT_HISTORY = 100


class DrainState(Enum):
    IDLE = "idle"
    DRAINING = "draining"


class SaveQueue:
    """Per-container FIFO of pending saves with single-flight draining.

    Example:
        >>> queue = SaveQueue("main", store, layout, remote)
        >>> queue.enqueue(locator.make_ref(ObjectKind.COMPONENT, "foo"))
        >>> queue.wait_idle()
        True
        >>> queue.reports[-1].saved[0].id
        '123'
    """

    def __init__(
        self,
        container: str,
        store: MetadataStore,
        layout: ObjectLayout,
        remote: RemoteStore,
        on_saved: Optional[Callable[[ObjectRef], None]] = None,
        on_failed: Optional[Callable[[PartialBatchFailure], None]] = None,
    ):
        self.container = container
        self.store = store
        self.layout = layout
        self.remote = remote
        self.on_saved = on_saved
        self.on_failed = on_failed

        self._condition = threading.Condition()
        self._state = DrainState.IDLE
        self._pending: List[ObjectRef] = []
        self._redrain_requested = False
        self._reports: Deque[DrainReport] = deque(maxlen=REPORT_HISTORY)
        self._worker: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Observation

    @property
    def state(self) -> DrainState:
        with self._condition:
            return self._state

    @property
    def is_draining(self) -> bool:
        return self.state is DrainState.DRAINING

    @property
    def pending_count(self) -> int:
        with self._condition:
            return len(self._pending)

    @property
    def reports(self) -> List[DrainReport]:
        """Reports of the most recent completed passes, oldest first."""
        with self._condition:
            return list(self._reports)

    def take_reports(self) -> List[DrainReport]:
        """Return the retained reports and forget them."""
        with self._condition:
            reports = list(self._reports)
            self._reports.clear()
        return reports

    def is_busy(self) -> bool:
        """True while a pass is running or items are waiting."""
        with self._condition:
            return self._state is DrainState.DRAINING or bool(self._pending)

    # ------------------------------------------------------------------
    # Enqueue / wait

    def enqueue(self, ref: ObjectRef) -> None:
        """Queue a reference for upload, starting the worker if idle."""
        with self._condition:
            self._pending.append(ref)
            if self._state is DrainState.DRAINING:
                self._redrain_requested = True
                logger.debug(
                    f"{self.container}: queued {ref.kind.value} '{ref.handle}' "
                    f"behind running pass ({len(self._pending)} pending)"
                )
                return

            self._state = DrainState.DRAINING
            self._worker = threading.Thread(
                target=self._drain,
                name=f"save-queue-{self.container}",
                daemon=True,
            )
            logger.debug(f"{self.container}: queued {ref.kind.value} '{ref.handle}', starting drain")
            self._worker.start()

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until the queue is idle.

        Returns:
            True if idle, False if the timeout expired first
        """
        with self._condition:
            return self._condition.wait_for(
                lambda: self._state is DrainState.IDLE, timeout=timeout
            )

    # ------------------------------------------------------------------
    # Saving

    def save(self, ref: ObjectRef) -> ObjectRef:
        """Upload one object and record the server-confirmed state.

        The id and revision are looked up again at save time, so a ref queued
        before an earlier save of the same object created it is an update.
        Creates the object remotely when no id is known, updates it otherwise.

        Returns:
            Reference carrying the confirmed id, revision and checksum

        Raises:
            LayoutError: If the local files cannot be read
            RemoteError: If the remote write fails
            HandleCollisionError: If the handle is bound to another id
        """
        object_id = self.store.get_id(ref.kind, ref.handle) or ref.id
        revision = (self.store.get_revision(object_id) if object_id else None) or ref.revision
        obj = self.layout.build_object(ref.kind, ref.handle, object_id, revision)
        client = self.remote.client(ref.kind)

        if object_id is None:
            logger.info(f"{self.container}: creating {ref.kind.value} '{ref.handle}'")
            confirmed = client.create(obj)
        else:
            logger.info(f"{self.container}: updating {ref.kind.value} '{ref.handle}' ({object_id})")
            confirmed = client.update(obj)

        digest = checksum(confirmed)
        self.store.record_save(ref.kind, confirmed.id, ref.handle, confirmed.revision, digest)
        return ObjectRef(
            kind=ref.kind,
            handle=ref.handle,
            id=confirmed.id,
            revision=confirmed.revision,
            checksum=digest,
            local_path=ref.local_path,
        )

    def _drain(self) -> None:
        pass_number = 0
        while True:
            with self._condition:
                batch = self._pending
                self._pending = []
                self._redrain_requested = False
            pass_number += 1
            report = self._run_pass(pass_number, batch)

            with self._condition:
                self._reports.append(report)
                if not self._redrain_requested and not self._pending:
                    self._state = DrainState.IDLE
                    self._worker = None
                    self._condition.notify_all()
                    logger.debug(f"{self.container}: save queue idle after {pass_number} pass(es)")
                    return

    def _run_pass(self, pass_number: int, batch: List[ObjectRef]) -> DrainReport:
        report = DrainReport(pass_number=pass_number)
        logger.debug(f"{self.container}: drain pass {pass_number} with {len(batch)} item(s)")

        for ref in batch:
            try:
                saved = self.save(ref)
            except Exception as e:
                failure = PartialBatchFailure(ref.handle, ref.id, e)
                logger.error(str(failure))
                report.failures.append(failure)
                self._notify(self.on_failed, failure)
                continue
            report.saved.append(saved)
            self._notify(self.on_saved, saved)

        if report.failures:
            logger.warning(
                f"{self.container}: pass {pass_number} saved {len(report.saved)}, "
                f"failed {len(report.failures)}"
            )
        return report

    def _notify(self, callback, payload) -> None:
        if callback is None:
            return
        try:
            callback(payload)
        except Exception as e:
            logger.warning(f"{self.container}: save queue callback failed: {e}")

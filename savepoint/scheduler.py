"""
APScheduler based worker pool for Savepoint.

Manages:
- Archive and retention work submitted by the host, off the caller's thread
- Per-file serialization: one FIFO queue per mirrored backup path, drained
  by at most one worker at a time
- Daily retention sweep over the whole backup tree
"""

import logging
import os
import threading
import uuid
from collections import deque
from typing import Any, Callable, Deque, Dict, Optional, Tuple

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from savepoint.backup.archiver import Archiver
from savepoint.backup.paths import SourceFile, mirror_key
from savepoint.backup.retention import RetentionManager
from savepoint.backup.storage import StorageError


logger = logging.getLogger(__name__)

Task = Tuple[str, Callable[[], Any]]


class BackupScheduler:
    """
    Runs backup operations on a bounded thread pool.

    Operations for the same source file run one at a time in submission
    order; operations for different files run in parallel.
    """

    def __init__(self, settings, timezone: str = 'UTC'):
        """
        Initialize and configure APScheduler.

        Args:
            settings: BackupSettings
            timezone: Timezone for the cron sweep
        """
        self.settings = settings
        self.results: Deque[Dict[str, Any]] = deque(maxlen=500)

        self._guard = threading.Lock()
        self._pending: Dict[str, Deque[Task]] = {}
        self._active = set()

        jobstores = {
            'default': MemoryJobStore()
        }

        executors = {
            'default': ThreadPoolExecutor(max_workers=settings.workers)
        }

        job_defaults = {
            'coalesce': True,  # Combine multiple pending instances into one
            'max_instances': 1,  # Only one instance of a job at a time
            'misfire_grace_time': 300  # 5 minutes grace period for misfires
        }

        self.scheduler = BackgroundScheduler(
            jobstores=jobstores,
            executors=executors,
            job_defaults=job_defaults,
            timezone=timezone
        )

        if settings.auto_cleanup:
            # Add retention sweep (runs daily at 2 AM)
            self.scheduler.add_job(
                func=self.sweep,
                trigger=CronTrigger(hour=2, minute=0),
                id='retention_sweep',
                name='Daily Retention Sweep',
                replace_existing=True
            )

    def start(self):
        """Start the scheduler."""
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Backup scheduler started (workers=%d)", self.settings.workers)

    def shutdown(self, wait: bool = True):
        """Stop the scheduler, waiting for running drains when ``wait`` is true."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("Backup scheduler stopped")

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def submit_archive(self, source: SourceFile, content: Optional[bytes] = None) -> str:
        """
        Queue an archive of ``source``.

        Returns:
            Serialization key of the source file
        """
        def task():
            return Archiver(self.settings).archive(source, content)

        key = mirror_key(source, self.settings.backup_root)
        self._enqueue(key, ('archive', task))
        return key

    def submit_retention(self, source: SourceFile, keep: Optional[int] = None) -> str:
        """Queue a retention pass for ``source``."""
        def task():
            return RetentionManager(self.settings).retain(source, keep)

        key = mirror_key(source, self.settings.backup_root)
        self._enqueue(key, ('retention', task))
        return key

    def sweep(self, keep: Optional[int] = None):
        """
        Queue a retention pass for every file in the backup tree.

        Each file goes through its own queue, so a sweep never deletes
        versions while an archive of the same file is running.
        """
        manager = RetentionManager(self.settings)
        try:
            groups = manager.catalog.scan_tree()
        except StorageError as e:
            logger.error("Retention sweep could not scan backup tree: %s", e)
            return

        logger.info("Retention sweep queued for %d file(s)", len(groups))
        for directory, basename in groups:
            def task(directory=directory, basename=basename):
                return RetentionManager(self.settings).retain_group(directory, basename, keep)

            self._enqueue(os.path.join(directory, basename), ('retention', task))

    def pending_count(self) -> int:
        with self._guard:
            return sum(len(queue) for queue in self._pending.values())

    def _enqueue(self, key: str, task: Task):
        with self._guard:
            self._pending.setdefault(key, deque()).append(task)
            if key in self._active:
                return
            self._active.add(key)

        try:
            self.scheduler.add_job(
                func=self._drain,
                args=[key],
                id=f"drain_{uuid.uuid4().hex}",
                name=f"Drain {key}",
                # A skipped drain would leave the key marked active forever
                misfire_grace_time=None,
            )
        except Exception:
            with self._guard:
                queue = self._pending.get(key)
                if queue is not None and task in queue:
                    queue.remove(task)
                if not queue:
                    self._pending.pop(key, None)
                self._active.discard(key)
            raise

    def _drain(self, key: str):
        """Run queued operations for one file until its queue is empty."""
        while True:
            with self._guard:
                queue = self._pending.get(key)
                if not queue:
                    self._pending.pop(key, None)
                    self._active.discard(key)
                    return
                kind, task = queue.popleft()

            try:
                outcome = task()
                self.results.append({'key': key, 'kind': kind, 'ok': True, 'result': outcome})
            except Exception as e:
                logger.error("%s failed for %s: %s", kind.capitalize(), key, e)
                self.results.append({'key': key, 'kind': kind, 'ok': False, 'error': str(e)})

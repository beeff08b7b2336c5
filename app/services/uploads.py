from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, wait
from logging import getLogger
from pathlib import Path

from app.core.errors import UploadError
from app.services.storage import ObjectStorage

logger = getLogger(__name__)

UPLOADED_MARKER = ".uploaded"


class UploadPipeline:
    """
    Publish a local directory tree under a remote key prefix.

    Directories are walked depth-first; the files of every directory are fanned
    out to a bounded pool shared by all concurrent directory uploads, so a burst
    of finished lessons cannot open an unbounded number of transfers.
    """

    def __init__(self, storage: ObjectStorage, max_concurrency: int = 4) -> None:
        self._storage = storage
        self._pool = ThreadPoolExecutor(max_workers=max(1, max_concurrency), thread_name_prefix="upload")

    def upload_directory(self, local_dir: Path, remote_prefix: str) -> int:
        """
        Upload every file beneath local_dir; returns how many files were sent.
        A missing directory is a no-op (the lesson produced nothing).
        """
        local_dir = Path(local_dir)
        if not local_dir.is_dir():
            logger.info("Nothing to upload, %s does not exist", local_dir)
            return 0

        remote_prefix = remote_prefix.strip("/")
        futures: list[tuple[Path, Future]] = []
        try:
            self._fan_out(local_dir, local_dir, remote_prefix, futures)
        except OSError as e:
            wait([f for _, f in futures])
            raise UploadError(f"could not walk {local_dir}: {e}") from e

        # fan-in: every sibling settles before we report
        wait([f for _, f in futures])
        failed: list[tuple[Path, BaseException]] = []
        for path, f in futures:
            exc = f.exception()
            if exc is not None:
                logger.error("Upload failed for %s: %s", path, exc)
                failed.append((path, exc))

        if failed:
            path, exc = failed[0]
            raise UploadError(f"{len(failed)} file(s) failed under {local_dir} (first: {path.name}: {exc})") from exc

        try:
            (local_dir / UPLOADED_MARKER).touch()
        except OSError as e:
            raise UploadError(f"could not mark {local_dir} as uploaded: {e}") from e
        logger.info("Uploaded %d file(s) from %s to %s", len(futures), local_dir, remote_prefix)
        return len(futures)

    def _fan_out(self, root: Path, current: Path, remote_prefix: str, futures: list[tuple[Path, Future]]) -> None:
        for entry in sorted(current.iterdir()):
            if entry.is_dir():
                self._fan_out(root, entry, remote_prefix, futures)
                continue
            if entry.name == UPLOADED_MARKER:
                continue
            key = f"{remote_prefix}/{entry.relative_to(root).as_posix()}" if remote_prefix else entry.relative_to(root).as_posix()
            futures.append((entry, self._pool.submit(self._storage.upload_file, entry, key)))

    def close(self) -> None:
        self._pool.shutdown(wait=True)

"""JSON document persistence for the knowledge base.

Writes go through a temp file in the target directory followed by an atomic
rename, so a reader never observes a partial document. Reads are validated
with pydantic at the boundary. Advisory ``fcntl.flock`` locks serialize
read-modify-write sequences across processes; acquisition is bounded so no
caller ever blocks indefinitely.
"""

from __future__ import annotations

import fcntl
import json
import os
import tempfile
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from pydantic import BaseModel, TypeAdapter, ValidationError

from llkb.core.errors import DocumentValidationError, ErrorCode, LockTimeoutError, SaveResult
from llkb.core.logging import get_logger

_logger = get_logger("store")

LOCK_TIMEOUT_SECONDS = 5.0
LOCK_RETRY_INTERVAL_SECONDS = 0.05


def _to_jsonable(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(data, (list, tuple)):
        return [_to_jsonable(item) for item in data]
    return data


def save_json_atomic(path: Path, data: Any) -> SaveResult:
    """Atomically replace ``path`` with ``data`` serialized as JSON.

    Models are dumped with their camelCase aliases. The parent directory is
    created when missing. On any failure the temp file is removed, the
    previous content stays in place, and a failed SaveResult is returned.

    Args:
        path: Target document path.
        data: A pydantic model, a list of models, or plain JSON-compatible data.

    Returns:
        SaveResult describing the outcome.
    """
    temp_path: Path | None = None
    try:
        payload = json.dumps(_to_jsonable(data), indent=2, ensure_ascii=False)
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as f:
            temp_path = Path(f.name)
            f.write(payload)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
        return SaveResult.ok()
    except (OSError, TypeError, ValueError) as e:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)
        _logger.warning(
            "document_write_failed",
            path=str(path),
            error=str(e),
            code=ErrorCode.WRITE_FAILED.value,
        )
        return SaveResult.failed(str(e))


def load_document(
    path: Path,
    schema: Any,
    precheck: Callable[[Any], str | None] | None = None,
) -> Any:
    """Read and validate a JSON document.

    Args:
        path: Document path.
        schema: A pydantic model class or any type a TypeAdapter accepts
            (e.g. ``list[LearnedPattern]``).
        precheck: Optional structural check run on the raw JSON before model
            validation. Returns a failure reason, or None when the shape is ok.

    Returns:
        The validated document.

    Raises:
        FileNotFoundError: If the document does not exist.
        OSError: If the document cannot be read.
        DocumentValidationError: If the content is not UTF-8, is not valid
            JSON, or does not match the schema.
    """
    try:
        with open(path, encoding="utf-8") as f:
            raw = f.read()
    except UnicodeDecodeError as e:
        raise DocumentValidationError(path, f"not valid UTF-8: {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise DocumentValidationError(path, f"malformed JSON: {e}") from e

    if precheck is not None:
        reason = precheck(data)
        if reason is not None:
            raise DocumentValidationError(path, reason)

    try:
        return TypeAdapter(schema).validate_python(data)
    except ValidationError as e:
        raise DocumentValidationError(path, str(e)) from e


def acquire_lock(
    fd: int,
    path: Path,
    timeout: float = LOCK_TIMEOUT_SECONDS,
    interval: float = LOCK_RETRY_INTERVAL_SECONDS,
) -> None:
    """Take an exclusive flock on ``fd``, retrying non-blocking attempts.

    Raises:
        LockTimeoutError: If the lock is still held elsewhere after ``timeout``.
    """
    deadline = time.monotonic() + timeout
    while True:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            return
        except BlockingIOError:
            if time.monotonic() >= deadline:
                raise LockTimeoutError(path, timeout) from None
            time.sleep(interval)


@contextmanager
def file_lock(
    path: Path,
    timeout: float = LOCK_TIMEOUT_SECONDS,
    interval: float = LOCK_RETRY_INTERVAL_SECONDS,
) -> Iterator[Path]:
    """Hold an advisory lock on a sidecar lock file for the duration of a block.

    The lock file is created when missing and left in place afterwards.

    Raises:
        LockTimeoutError: If the lock cannot be acquired within ``timeout``.
        OSError: If the lock file cannot be created.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(str(path), os.O_RDWR | os.O_CREAT, 0o644)
    try:
        acquire_lock(fd, path, timeout, interval)
        try:
            yield path
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)

from __future__ import annotations

import logging
import os
import re
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from .codec import decode, encode
from .exceptions import MalformedDocument
from .metrics import metrics
from .schemas import ContractDocument, Interaction

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")

if os.name == "nt":
    import msvcrt
else:
    import fcntl


def contract_filename(consumer: str, provider: str) -> str:
    """File name for a consumer/provider pair, e.g. ``frontend-product-service.json``."""
    def clean(name: str) -> str:
        return _UNSAFE.sub("_", name.strip()).strip("_") or "unnamed"

    return f"{clean(consumer)}-{clean(provider)}.json"


def load_document(path: PathLike) -> ContractDocument:
    p = Path(path)
    if not p.exists():
        raise MalformedDocument("Contract file not found", str(p))
    return decode(p.read_bytes(), source=str(p))


def merge_documents(existing: ContractDocument, new: ContractDocument) -> ContractDocument:
    """
    Combine two documents for the same consumer/provider pair.

    Interactions are deduplicated by identity; an interaction in ``new`` replaces
    the one in ``existing`` in place, new identities are appended in order.
    """
    if (existing.consumer_name, existing.provider_name) != (new.consumer_name, new.provider_name):
        raise MalformedDocument(
            f"Cannot merge contract {new.consumer_name}->{new.provider_name} into "
            f"{existing.consumer_name}->{existing.provider_name}"
        )
    merged: Dict[tuple, Interaction] = {i.identity: i for i in existing.interactions}
    for interaction in new.interactions:
        merged[interaction.identity] = interaction
    return ContractDocument(
        consumer_name=new.consumer_name,
        provider_name=new.provider_name,
        interactions=list(merged.values()),
        spec_version=new.spec_version,
        metadata={**existing.metadata, **new.metadata},
        extras={**existing.extras, **new.extras},
    )


@contextmanager
def _exclusive_lock(target: Path) -> Iterator[None]:
    """Advisory lock on ``.<name>.lock`` beside ``target``, held across processes."""
    lock_path = target.parent / f".{target.name}.lock"
    with open(lock_path, "a+b") as lock_file:
        if os.name == "nt":
            msvcrt.locking(lock_file.fileno(), msvcrt.LK_LOCK, 1)
        else:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            if os.name == "nt":
                lock_file.seek(0)
                msvcrt.locking(lock_file.fileno(), msvcrt.LK_UNLCK, 1)
            else:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)


def _replace_atomically(target: Path, payload: bytes) -> None:
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent))
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, target)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def write_document(document: ContractDocument, path: PathLike, mode: str = "overwrite") -> Path:
    """
    Write ``document`` to ``path`` atomically (temp file in the same directory, then rename).

    With ``mode="merge"`` an existing document at ``path`` is merged first. The
    read-merge-write runs under an advisory lock file so concurrent flushes from
    several processes keep each other's interactions.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with _exclusive_lock(target):
        if mode == "merge" and target.exists():
            document = merge_documents(load_document(target), document)
        _replace_atomically(target, encode(document))

    metrics.record_document_written(mode)
    logger.info(
        f"Contract written: {target}",
        extra={"interactions": len(document.interactions), "mode": mode},
    )
    return target


def find_documents(directory: PathLike, provider: Optional[str] = None) -> List[Path]:
    """Contract files in ``directory``, optionally only those for ``provider``."""
    found: List[Path] = []
    for p in sorted(Path(directory).glob("*.json")):
        if provider is None:
            found.append(p)
            continue
        try:
            if load_document(p).provider_name == provider:
                found.append(p)
        except MalformedDocument as e:
            logger.warning(f"Skipping unreadable contract {p}: {e}")
    return found

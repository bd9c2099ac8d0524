from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional, Union

from ..config import get_settings
from ..core.contract_store import contract_filename, write_document
from ..core.schemas import ContractDocument, Interaction, SpecVersion

logger = logging.getLogger(__name__)


class Recorder:
    """
    Collects verified interactions for one consumer/provider pair and writes them out.

    Safe to share between the test thread and a mock server thread.
    """

    def __init__(
        self,
        consumer: str,
        provider: str,
        pact_dir: Optional[Union[str, Path]] = None,
        spec_version: Optional[str] = None,
        file_write_mode: Optional[str] = None,
    ):
        settings = get_settings()
        self.consumer = consumer
        self.provider = provider
        self.pact_dir = Path(pact_dir) if pact_dir is not None else settings.pact_dir_path()
        self.spec_version = SpecVersion(spec_version or settings.PACT_SPEC_VERSION)
        self.file_write_mode = file_write_mode or settings.PACT_FILE_WRITE_MODE
        if self.file_write_mode not in ("merge", "overwrite"):
            raise ValueError(f"file_write_mode must be 'merge' or 'overwrite', got {self.file_write_mode!r}")
        self._lock = threading.Lock()
        self._pending: Dict[tuple, Interaction] = {}

    def record(self, interaction: Interaction) -> None:
        """Queue an interaction; recording the same identity again replaces the earlier one."""
        with self._lock:
            self._pending[interaction.identity] = interaction
        logger.debug(f"Recorded interaction '{interaction.description}'")

    @property
    def pending(self) -> List[Interaction]:
        with self._lock:
            return list(self._pending.values())

    def document(self) -> ContractDocument:
        return ContractDocument(
            consumer_name=self.consumer,
            provider_name=self.provider,
            interactions=self.pending,
            spec_version=self.spec_version,
        )

    @property
    def default_path(self) -> Path:
        return self.pact_dir / contract_filename(self.consumer, self.provider)

    def flush(self, output_path: Optional[Union[str, Path]] = None) -> Path:
        """
        Write the pending interactions and clear them.

        In ``merge`` mode an existing file for the pair keeps its other interactions;
        ``overwrite`` replaces the file.
        """
        target = Path(output_path) if output_path is not None else self.default_path
        with self._lock:
            document = ContractDocument(
                consumer_name=self.consumer,
                provider_name=self.provider,
                interactions=list(self._pending.values()),
                spec_version=self.spec_version,
            )
            written = write_document(document, target, mode=self.file_write_mode)
            self._pending.clear()
        return written

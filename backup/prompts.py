"""
Selection providers for restore.

The restore session asks two questions: which snapshot, and whether to go
ahead with the destructive replace. Providers answer them either from the
terminal or from values fixed up front (CLI flags, tests).
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

from backup.models import SnapshotMetadata


class SelectionProvider(ABC):
    """Answers the snapshot-selection and confirmation prompts."""

    @abstractmethod
    def choose_snapshot(self, snapshot_ids: list[str]) -> str:
        """Return the raw selection: a 1-based index, "latest" or a snapshot id."""

    @abstractmethod
    def confirm_restore(self, metadata: SnapshotMetadata) -> bool:
        """Return True only on explicit confirmation of the destructive restore."""


class TerminalSelectionProvider(SelectionProvider):
    """
    Prompts on the terminal.

    A preset selection skips the snapshot prompt; confirmation is always
    asked. Closed stdin or Ctrl-C at either prompt declines.
    """

    def __init__(
        self,
        selection: Optional[str] = None,
        input_fn: Callable[[str], str] = input,
        output_fn: Callable[[str], None] = print,
    ):
        self.selection = selection
        self._input = input_fn
        self._output = output_fn

    def choose_snapshot(self, snapshot_ids: list[str]) -> str:
        if self.selection is not None:
            return self.selection
        self._output("Available backups:")
        for index, snapshot_id in enumerate(snapshot_ids, 1):
            self._output(f"{index}. {snapshot_id}")
        try:
            return self._input('\nSelect backup number (or "latest" for most recent): ').strip()
        except (EOFError, KeyboardInterrupt):
            self._output("")
            return ""

    def confirm_restore(self, metadata: SnapshotMetadata) -> bool:
        self._output("\n📋 Backup Information:")
        self._output(f"   Backup: {metadata.snapshot_id}")
        self._output(f"   Date: {metadata.date}")
        self._output(f"   Total Records: {metadata.total_records}")
        self._output(f"   Tables: {len(metadata.tables)}")
        try:
            answer = self._input('\n⚠️  WARNING: This will REPLACE all existing data! Continue? (yes/no): ')
        except (EOFError, KeyboardInterrupt):
            self._output("")
            return False
        return answer.strip().lower() == 'yes'


class ScriptedSelectionProvider(SelectionProvider):
    """Returns canned answers and records what it was asked."""

    def __init__(self, selection: str = "latest", confirm: bool = False):
        self.selection = selection
        self.confirm = confirm
        self.offered: Optional[list[str]] = None
        self.confirmed_metadata: Optional[SnapshotMetadata] = None

    def choose_snapshot(self, snapshot_ids: list[str]) -> str:
        self.offered = list(snapshot_ids)
        return self.selection

    def confirm_restore(self, metadata: SnapshotMetadata) -> bool:
        self.confirmed_metadata = metadata
        return self.confirm

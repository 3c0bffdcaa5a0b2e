"""Selection of accumulated transcripts destined for the workbench."""

from .accumulation import ScanState


class SelectionSet:
    """
    Ordered set of chosen transcript ids.

    Ids are kept in the order they were selected; select_all uses the
    accumulated order.
    """

    def __init__(self, state: ScanState):
        self._state = state
        self._ids: dict[str, None] = {}

    @property
    def ids(self) -> list[str]:
        return list(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, transcript_id: str) -> bool:
        return transcript_id in self._ids

    def toggle(self, transcript_id: str) -> bool:
        """
        Flip selection of one id.

        Returns:
            True if the id is now selected

        Raises:
            KeyError: The id is not in the accumulated results
        """
        if transcript_id in self._ids:
            del self._ids[transcript_id]
            return False

        if transcript_id not in set(self._state.ids):
            raise KeyError(transcript_id)

        self._ids[transcript_id] = None
        return True

    def select_all(self) -> None:
        self._ids = dict.fromkeys(self._state.ids)

    def deselect_all(self) -> None:
        self._ids = {}

    def all_selected(self) -> bool:
        return bool(self._state.accumulated) and len(self._ids) == len(self._state.accumulated)

    def toggle_all(self) -> None:
        """Select everything, or clear if everything is already selected."""
        if self.all_selected():
            self.deselect_all()
        else:
            self.select_all()

    def clear(self) -> None:
        self._ids = {}

    def prune(self) -> None:
        """Drop ids that are no longer accumulated."""
        known = set(self._state.ids)
        self._ids = {tid: None for tid in self._ids if tid in known}

"""Index navigation over a fixed question list, plus keyboard bindings."""
from typing import Optional, Tuple

from engine import OPTION_LETTERS

# digit -> option letter, arrows -> navigation
KEY_BINDINGS = {str(i + 1): ("select", letter) for i, letter in enumerate(OPTION_LETTERS)}
KEY_BINDINGS.update({
    "ArrowLeft": ("prev", None),
    "ArrowRight": ("next", None),
})


def resolve_key(key: str) -> Optional[Tuple[str, Optional[str]]]:
    """Map a key name to (action, argument), or None when unbound."""
    return KEY_BINDINGS.get(key)


class Navigator:
    """Current position within a list of `total` questions. Out-of-range moves clamp."""

    def __init__(self, total: int, index: int = 0):
        self.total = max(0, total)
        self.index = 0
        self.jump_to(index)

    def _clamp(self, index: int) -> int:
        if self.total == 0:
            return 0
        return min(max(index, 0), self.total - 1)

    @property
    def is_first(self) -> bool:
        return self.index == 0

    @property
    def is_last(self) -> bool:
        return self.total == 0 or self.index == self.total - 1

    def jump_to(self, index: int) -> int:
        self.index = self._clamp(index)
        return self.index

    def go_next(self) -> int:
        return self.jump_to(self.index + 1)

    def go_prev(self) -> int:
        return self.jump_to(self.index - 1)

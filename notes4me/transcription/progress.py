"""Progress extraction from the transcription engine's diagnostic stream."""

import re
from typing import List, Optional

PROGRESS_PATTERN = re.compile(r"progress\s*=\s*(\d+)%")


class ProgressParser:
    """Turns raw diagnostic text into a de-duplicated, increasing series of percentages.

    Text may arrive in arbitrary pieces; a marker split across two pieces is
    only matched once the line is complete. The engine repeats the same value
    many times, so a value is emitted only when it exceeds the last one.
    """

    def __init__(self):
        self.last_progress: Optional[int] = None
        self._pending = ""

    def feed(self, text: str) -> List[int]:
        """Consume a piece of diagnostic output.

        Returns:
            New progress values, in order, each greater than the previous
        """
        self._pending += text.replace("\r", "\n")
        complete, _, self._pending = self._pending.rpartition("\n")
        return self._scan(complete)

    def flush(self) -> List[int]:
        """Consume whatever is left once the stream has closed."""
        remaining, self._pending = self._pending, ""
        return self._scan(remaining)

    def _scan(self, text: str) -> List[int]:
        emitted = []
        for match in PROGRESS_PATTERN.finditer(text):
            value = min(int(match.group(1)), 100)
            if self.last_progress is None or value > self.last_progress:
                self.last_progress = value
                emitted.append(value)
        return emitted

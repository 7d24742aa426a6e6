from typing import Protocol, runtime_checkable


@runtime_checkable
class StatusSink(Protocol):
    def emit(self, line: str) -> None: ...


class ConsoleStatusSink:
    """Prints status lines for the human operator, one per call."""

    def __init__(self, line_prefix: str = ""):
        self._line_prefix = line_prefix

    def emit(self, line: str) -> None:
        print(f"{self._line_prefix}{line}" if line else "", flush=True)


class NullStatusSink:
    def emit(self, line: str) -> None:
        return None


class RecordingStatusSink:
    def __init__(self) -> None:
        self.lines: list[str] = []

    def emit(self, line: str) -> None:
        self.lines.append(line)

    def text(self) -> str:
        return "\n".join(self.lines)


def create_status_sink(kind: str, line_prefix: str = "") -> StatusSink:
    name = kind.strip().lower()
    if name == "console":
        return ConsoleStatusSink(line_prefix)
    if name in ("none", "null", "off"):
        return NullStatusSink()
    raise ValueError(f"Unknown status output: {kind!r}. Supported: 'console', 'none'")

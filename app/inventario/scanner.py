"""Barcode-scanner vs. manual keystroke disambiguation.

USB barcode readers behave as keyboards: they "type" the whole code in a
burst and finish with a terminator key. The classifier below turns a stream
of ``(key, timestamp_ms)`` events into scanned codes using inter-keystroke
timing only, so no dedicated hardware channel is needed.

The buffer is an explicit state machine::

    IDLE --char--> ACCUMULATING --terminator (valid code)--> FLUSHED
      ^                 |  idle gap / short code                 |
      +-----------------+----------------------------------------+
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Mapping

from app.core.models import DispositivoTipo

TERMINATOR_KEYS = frozenset({"Enter", "Tab", "\n", "\r"})


class BufferState(str, Enum):
    IDLE = "IDLE"
    ACCUMULATING = "ACCUMULATING"
    FLUSHED = "FLUSHED"


@dataclass(frozen=True)
class ScanResult:
    codigo: str
    dispositivo: DispositivoTipo


class InputClassifier:
    """Strategy interface: feed key events, get a ScanResult when a code completes."""

    state: BufferState = BufferState.IDLE

    def feed(self, key: str, timestamp_ms: float) -> ScanResult | None:
        raise NotImplementedError

    def reset(self) -> None:
        raise NotImplementedError


@dataclass
class KeystrokeTimingClassifier(InputClassifier):
    burst_ms: float = 50
    idle_reset_ms: float = 200
    min_length: int = 10
    # Share of inter-key gaps that must be under burst_ms to call it a scan.
    burst_ratio: float = 0.8
    state: BufferState = field(default=BufferState.IDLE, init=False)
    _buffer: list[str] = field(default_factory=list, init=False, repr=False)
    _fast_gaps: int = field(default=0, init=False, repr=False)
    _slow_gaps: int = field(default=0, init=False, repr=False)
    _last_ms: float | None = field(default=None, init=False, repr=False)

    def reset(self) -> None:
        self._buffer = []
        self._fast_gaps = 0
        self._slow_gaps = 0
        self.state = BufferState.IDLE

    def feed(self, key: str, timestamp_ms: float) -> ScanResult | None:
        gap = None if self._last_ms is None else timestamp_ms - self._last_ms
        self._last_ms = timestamp_ms

        if gap is not None and gap > self.idle_reset_ms:
            # Someone paused: whatever was typed before is not part of a burst.
            self.reset()

        if key in TERMINATOR_KEYS:
            return self._flush()

        if len(key) != 1:
            return None

        if self.state != BufferState.ACCUMULATING:
            self.reset()
            self.state = BufferState.ACCUMULATING
        elif gap is not None:
            if gap < self.burst_ms:
                self._fast_gaps += 1
            else:
                self._slow_gaps += 1
        self._buffer.append(key)
        return None

    def _flush(self) -> ScanResult | None:
        codigo = "".join(self._buffer).strip()
        fast, slow = self._fast_gaps, self._slow_gaps
        self.reset()
        if len(codigo) < self.min_length:
            return None
        self.state = BufferState.FLUSHED
        total = fast + slow
        is_burst = total > 0 and fast / total >= self.burst_ratio
        return ScanResult(codigo=codigo, dispositivo=DispositivoTipo.ESCANER if is_burst else DispositivoTipo.MANUAL)


@dataclass
class ManualEntryClassifier(InputClassifier):
    """Timing heuristic disabled: every terminated entry is a manual code."""

    min_length: int = 1
    state: BufferState = field(default=BufferState.IDLE, init=False)
    _buffer: list[str] = field(default_factory=list, init=False, repr=False)

    def reset(self) -> None:
        self._buffer = []
        self.state = BufferState.IDLE

    def feed(self, key: str, timestamp_ms: float) -> ScanResult | None:
        if key in TERMINATOR_KEYS:
            codigo = "".join(self._buffer).strip()
            self.reset()
            if len(codigo) < self.min_length:
                return None
            self.state = BufferState.FLUSHED
            return ScanResult(codigo=codigo, dispositivo=DispositivoTipo.MANUAL)
        if len(key) == 1:
            self.state = BufferState.ACCUMULATING
            self._buffer.append(key)
        return None


def build_input_classifier(config: Mapping[str, object]) -> InputClassifier:
    if not config.get("SCANNER_TIMING_ENABLED", True):
        return ManualEntryClassifier()
    return KeystrokeTimingClassifier(
        burst_ms=float(config.get("SCANNER_BURST_MS", 50)),
        idle_reset_ms=float(config.get("SCANNER_IDLE_RESET_MS", 200)),
        min_length=int(config.get("SCANNER_MIN_LENGTH", 10)),
    )


def classify_keystrokes(
    events: Iterable[tuple[str, float]],
    classifier: InputClassifier,
) -> list[ScanResult]:
    results: list[ScanResult] = []
    for key, timestamp_ms in events:
        result = classifier.feed(key, timestamp_ms)
        if result is not None:
            results.append(result)
    return results

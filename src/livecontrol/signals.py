"""
Frame-scoped signal sources.

A signal source turns an external input snapshot into named values every
frame. The engine's only requirement is the two-method `SignalSource`
capability: `update(frame_input)` and `export() -> [(name, value), ...]`.
Audio and MIDI capture live outside this package; they plug in as further
sources.
"""

import string
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .runtime.builtins import ease

KEYS = string.ascii_uppercase

Signal = Tuple[str, Any]


@dataclass
class FrameInput:
    """Everything the driver knows about the current frame."""
    frame: int = 0
    elapsed_seconds: float = 0.0
    keys: Optional[Sequence[bool]] = None
    mouse_position: Tuple[float, float] = (0.0, 0.0)
    mouse_left_is_down: bool = False
    window_dims: Tuple[float, float] = (1.0, 1.0)
    custom_vars: Dict[str, float] = field(default_factory=dict)


class SignalSource(ABC):
    """Anything that can be refreshed from a frame and exported as names."""

    @abstractmethod
    def update(self, frame_input: FrameInput) -> None:
        ...

    @abstractmethod
    def export(self) -> List[Signal]:
        ...


@dataclass(frozen=True)
class TimingConfig:
    bpm: float = 135.0
    fps: float = 30.0
    beats_per_bar: float = 4.0
    realtime: bool = False

    def seconds_to_beats(self, seconds: float) -> float:
        return seconds / 60.0 * self.bpm


class TimeSignals(SignalSource):
    """
    Musical time derived from the frame counter.

    In frame mode `seconds = frame / fps`; in realtime mode the driver's
    elapsed wall time is used instead. The beat `t` is seconds scaled by
    the configured bpm.
    """

    def __init__(self, timing: Optional[TimingConfig] = None):
        self.timing = timing or TimingConfig()
        self.frame = 0
        self.elapsed_seconds = 0.0
        self._prev_seconds: Optional[float] = None

    def update(self, frame_input: FrameInput) -> None:
        self._prev_seconds = self.seconds
        self.frame = frame_input.frame
        self.elapsed_seconds = frame_input.elapsed_seconds

    @property
    def seconds(self) -> float:
        if self.timing.realtime:
            return self.elapsed_seconds
        return self.frame / self.timing.fps

    @property
    def beat(self) -> float:
        return self.timing.seconds_to_beats(self.seconds)

    @property
    def bar(self) -> float:
        return self.beat / self.timing.beats_per_bar

    def seconds_between_frames(self) -> float:
        if self.timing.realtime and self._prev_seconds is not None:
            return self.seconds - self._prev_seconds
        return 1.0 / self.timing.fps

    def is_on_bar(self) -> bool:
        """True when the bar number advanced since the previous frame."""
        if self.timing.realtime:
            prev = self._prev_seconds if self._prev_seconds is not None else 0.0
        else:
            prev = (self.frame - 1) / self.timing.fps
        prev_bar = self.timing.seconds_to_beats(prev) / self.timing.beats_per_bar
        return int(self.bar // 1) > int(prev_bar // 1)

    def export(self) -> List[Signal]:
        t = self.beat
        return [
            ("t", t),
            ("tease", ease(t, 1.0 / self.timing.beats_per_bar, 0.0)),
            ("stease", ease(t, 0.01, 0.0)),
            ("ti", int(t)),
            ("bar", self.bar),
            ("seconds", self.seconds),
            ("f", float(self.frame)),
            ("fi", int(self.frame)),
        ]

    def debug(self) -> str:
        return (
            f"realtime: {self.timing.realtime}\n"
            f"seconds: {self.seconds:.1f}\n"
            f"beat: {self.beat:.1f}\n"
            f"bar: {self.bar:.1f} ({self.is_on_bar()})\n"
            f"frame: {self.frame}"
        )


class CustomVars(SignalSource):
    """Passes through the name -> number map the driver supplied for the latest frame."""

    def __init__(self, values: Optional[Dict[str, float]] = None):
        self.values: Dict[str, float] = dict(values or {})

    def update(self, frame_input: FrameInput) -> None:
        self.values = dict(frame_input.custom_vars)

    def export(self) -> List[Signal]:
        return list(self.values.items())


class AppInputSignals(SignalSource):
    """
    Keyboard, pointer and window state.

    For each key A..Z two names are exported: `k{K}t` is true after an odd
    number of presses (a toggle) and `k{K}f` is true while the key is held.
    """

    def __init__(self, include_keyboard: bool = True):
        self.include_keyboard = include_keyboard
        self.keys_fire = [False] * len(KEYS)
        self.keys_cycle = [0] * len(KEYS)
        self.click_fire = False
        self.click_cycle = 0
        self.click_loc = (0.0, 0.0)
        self.mouse_loc = (0.0, 0.0)
        self.window_dims = (1.0, 1.0)
        self.custom_vars = CustomVars()

    def update(self, frame_input: FrameInput) -> None:
        if frame_input.keys is not None:
            for idx, pressed in enumerate(frame_input.keys[:len(KEYS)]):
                if pressed and not self.keys_fire[idx]:
                    self.keys_cycle[idx] += 1
                self.keys_fire[idx] = bool(pressed)

        self.mouse_loc = tuple(frame_input.mouse_position)
        # clicks only register while the button is down
        self.click_fire = False
        if frame_input.mouse_left_is_down:
            self.click_loc = self.mouse_loc
            self.click_fire = True
            self.click_cycle += 1

        self.custom_vars.update(frame_input)
        self.window_dims = tuple(frame_input.window_dims)

    def key_toggled(self, key: str) -> bool:
        return self.keys_cycle[KEYS.index(key.upper())] % 2 == 1

    def key_held(self, key: str) -> bool:
        return self.keys_fire[KEYS.index(key.upper())]

    def export(self) -> List[Signal]:
        out: List[Signal] = []
        if self.include_keyboard:
            for idx, key in enumerate(KEYS):
                out.append((f"k{key}t", self.keys_cycle[idx] % 2 == 1))
                out.append((f"k{key}f", self.keys_fire[idx]))
        out.extend([
            ("has_click", self.click_fire),
            ("cx", float(self.click_loc[0])),
            ("cy", float(self.click_loc[1])),
            ("mx", float(self.mouse_loc[0])),
            ("my", float(self.mouse_loc[1])),
            ("w", float(self.window_dims[0])),
            ("h", float(self.window_dims[1])),
        ])
        out.extend(self.custom_vars.export())
        return out


class FrameSignals(SignalSource):
    """
    Aggregates signal sources for one frame.

    Sources are updated and exported in registration order, so a later
    source can shadow a name exported by an earlier one.
    """

    def __init__(self, sources: Optional[List[SignalSource]] = None):
        self.sources: List[SignalSource] = list(sources or [])

    @classmethod
    def default(cls, timing: Optional[TimingConfig] = None) -> "FrameSignals":
        return cls([TimeSignals(timing), AppInputSignals()])

    def register(self, source: SignalSource) -> None:
        self.sources.append(source)

    @property
    def time(self) -> Optional[TimeSignals]:
        for source in self.sources:
            if isinstance(source, TimeSignals):
                return source
        return None

    def update(self, frame_input: FrameInput) -> None:
        for source in self.sources:
            source.update(frame_input)

    def export(self) -> List[Signal]:
        out: List[Signal] = []
        for source in self.sources:
            out.extend(source.export())
        return out


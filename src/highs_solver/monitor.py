"""
Solve progress tracking.

The engine writes its branch-and-bound table to a log file while it runs. A
SolveTracker tails that file and turns table rows into SolveProgress events
published on a SolveMonitor.

Log layout:
    ...presolve output...
        Src  Proc. InQueue |  Leaves   Expl. | BestBound       BestSol              Gap |   Cuts   InLp Confl. | LpIters     Time
             0       0         0   0.00%   0               inf                  inf        0      0      2        57     0.0s
     L       0       0         0 100.00%   0               0                  0.00%     2228     30     80       339     0.2s
    Solving report
    ...
"""

import codecs
import logging
import math
import os
import re
import threading
from enum import Enum
from typing import Callable, Dict, List, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .data_models import SolveProgress

logger = logging.getLogger(__name__)

ITERATION_HEADER_PATTERN = re.compile(r'^\s*(?:Src\s+)?Proc\.\s+InQueue')
ITERATION_DATA_PATTERN = re.compile(
    r'^\s+\w?\s+\d+\s+\d+\s+\d+\s+\S+\s+(\S+)\s+(\S+)\s+(\S+)\s+(\S+)\s+\d+\s+\d+\s+(\d+)\s+\S+\s*$'
)
REPORT_HEADER_PATTERN = re.compile(r'^Solving report$')


class ProgressPhase(Enum):
    PREPARATION = "preparation"
    ITERATION = "iteration"
    REPORT = "report"


def next_phase(line: str, phase: ProgressPhase) -> ProgressPhase:
    """
    Phase transition for one log line. Headers switch phase from any state.
    """
    if ITERATION_HEADER_PATTERN.match(line):
        return ProgressPhase.ITERATION
    if REPORT_HEADER_PATTERN.match(line.rstrip('\r\n')):
        return ProgressPhase.REPORT
    return phase


def parse_number(token: str) -> float:
    if token == 'inf':
        return math.inf
    if token.endswith('%'):
        return float(token[:-1]) / 100
    return float(token)


def parse_progress(line: str) -> Optional[SolveProgress]:
    """
    Parse one row of the iteration table.

    Returns:
        SolveProgress, or None if the line is not a data row
    """
    match = ITERATION_DATA_PATTERN.match(line.rstrip('\r\n'))
    if not match:
        return None
    dual_bound, primal_bound, gap, cuts, lp_iters = match.groups()
    try:
        relative_gap = parse_number(gap)
    except ValueError:
        # Gaps too wide to print are shown as "Large".
        relative_gap = math.nan
    try:
        return SolveProgress(
            relative_gap=relative_gap,
            primal_bound=parse_number(primal_bound),
            dual_bound=parse_number(dual_bound),
            cut_count=int(parse_number(cuts)),
            lp_iteration_count=int(lp_iters),
        )
    except ValueError:
        logger.debug(f"Skipping malformed progress line: {line!r}")
        return None


ProgressListener = Callable[[SolveProgress], None]
DoneListener = Callable[[bool], None]


class SolveMonitor:
    """
    Publish/subscribe channel for solve events.

    Topics:
        progress: listener(progress: SolveProgress)
        done: listener(reported: bool), True if the solving report was seen
    """

    TOPICS = ('progress', 'done')

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Callable]] = {topic: [] for topic in self.TOPICS}
        self._lock = threading.Lock()

    def _topic(self, topic: str) -> List[Callable]:
        if topic not in self._listeners:
            raise ValueError(f"Unknown topic: {topic}")
        return self._listeners[topic]

    def on(self, topic: str, listener: Callable) -> 'SolveMonitor':
        with self._lock:
            self._topic(topic).append(listener)
        return self

    def off(self, topic: str, listener: Callable) -> 'SolveMonitor':
        with self._lock:
            listeners = self._topic(topic)
            if listener in listeners:
                listeners.remove(listener)
        return self

    def emit(self, topic: str, *args) -> None:
        with self._lock:
            listeners = list(self._topic(topic))
        for listener in listeners:
            try:
                listener(*args)
            except Exception as e:
                logger.error(f"Monitor listener for '{topic}' failed: {e}", exc_info=True)


class _LogFileHandler(FileSystemEventHandler):
    def __init__(self, tracker: 'SolveTracker'):
        self.tracker = tracker

    def on_modified(self, event):
        if not event.is_directory and os.path.realpath(event.src_path) == self.tracker.log_path:
            self.tracker.poll()

    def on_created(self, event):
        self.on_modified(event)

    def on_closed(self, event):
        self.on_modified(event)


class SolveTracker:
    """
    Tails a log file and publishes progress on a monitor.

    File changes are pushed by a watchdog observer. The tracker never touches
    the engine, it only reads its log.
    """

    def __init__(self, monitor: SolveMonitor, log_path: str, from_beginning: bool = False):
        self.monitor = monitor
        self.log_path = os.path.realpath(log_path)
        self.phase = ProgressPhase.PREPARATION

        self._lock = threading.RLock()
        self._decoder = codecs.getincrementaldecoder('utf-8')(errors='replace')
        self._buffer = ''
        self._offset = 0 if from_beginning else os.path.getsize(self.log_path)
        self._done = threading.Event()
        self._reported = False
        self._shut = False
        self._stopped = False
        self._observer: Optional[Observer] = None

    @classmethod
    def create(cls, monitor: SolveMonitor, log_path: str, from_beginning: bool = False) -> 'SolveTracker':
        """Create a tracker and start watching its file."""
        tracker = cls(monitor, log_path, from_beginning=from_beginning)
        tracker.start()
        return tracker

    def start(self) -> None:
        observer = Observer()
        observer.schedule(_LogFileHandler(self), os.path.dirname(self.log_path), recursive=False)
        observer.daemon = True
        observer.start()
        self._observer = observer
        logger.debug(f"Tracking progress from {self.log_path}")
        # Catch up on anything written before the observer started.
        self.poll()

    def poll(self) -> None:
        """Read and ingest everything appended since the last read."""
        with self._lock:
            if self._done.is_set():
                return
            try:
                with open(self.log_path, 'rb') as f:
                    f.seek(self._offset)
                    chunk = f.read()
            except FileNotFoundError:
                return
            if not chunk:
                return
            self._offset += len(chunk)
            self._buffer += self._decoder.decode(chunk)
            *lines, self._buffer = self._buffer.split('\n')
            for line in lines:
                self._ingest(line)
                if self._done.is_set():
                    break

    def _ingest(self, line: str) -> None:
        phase = next_phase(line, self.phase)
        if phase != self.phase:
            self.phase = phase
            if phase == ProgressPhase.REPORT:
                self._complete(True)
            return
        if self.phase == ProgressPhase.ITERATION:
            progress = parse_progress(line)
            if progress is not None:
                self.monitor.emit('progress', progress)

    def _complete(self, reported: bool) -> None:
        if self._done.is_set():
            return
        self._reported = reported
        self._done.set()
        self._stop_watching()
        self.monitor.emit('done', reported)

    def _stop_watching(self) -> None:
        # Joining happens in shutdown, outside the lock the observer thread
        # may be waiting on.
        if self._observer is not None and not self._stopped:
            self._stopped = True
            self._observer.stop()

    def shutdown(self) -> None:
        """
        Stop tracking. Lines already written are ingested first. Safe to call
        more than once and after natural completion.
        """
        with self._lock:
            if self._shut:
                return
            self._shut = True
            self.poll()
            if not self._done.is_set() and self._buffer:
                line, self._buffer = self._buffer, ''
                self._ingest(line)
            self._complete(False)
            self._stop_watching()
        observer = self._observer
        if observer is not None and threading.current_thread() is not observer:
            observer.join(timeout=5)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until tracking ends. Returns True if the solving report was
        observed, False on shutdown without report or timeout.
        """
        self._done.wait(timeout)
        return self._reported

    @property
    def is_done(self) -> bool:
        return self._done.is_set()

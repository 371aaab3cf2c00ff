"""
backend.py — Compute Backend (buffers, encoder, queue, readback)
=================================================================
The simulation never touches numpy arrays directly between stages: it asks
the backend for buffers, records kernel dispatches into a command encoder,
and submits the encoder to the queue.

Execution model:
  - Each kernel is one data-parallel pass over the whole 2D cell index space.
    Here the "parallel-for" is plain vectorised numpy: every cell is computed
    in one array expression, no Python loops over cells.
  - The queue is ONE execution timeline: a single daemon worker thread.
    Command buffers run strictly in submission order, commands inside a
    buffer run in recording order. A command starts only after the previous
    one has written every cell → each command is a barrier.
  - Waiting is always bounded. `wait()` gives up after `timeout` seconds and
    raises BackendTimeout instead of hanging the request. The worker is a
    daemon thread, so a kernel that never returns cannot keep the process
    alive after the response has been written.

One request = one backend. Dispose it (or use it as a context manager) when
the request completes.
"""

from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from queue import Empty, SimpleQueue
from threading import Thread

import numpy as np

from .errors import BackendError, BackendTimeout, ReadbackError


BACKEND_NAME = "numpy/cpu"
DEFAULT_TIMEOUT = 30.0     # seconds, for every wait on the queue


class Buffer:
    """
    A device buffer of float32 values.

    Scalar fields hold `cells` values, 2-component fields hold `cells × 2`
    (stored as shape (cells, 2) so a kernel can view it as (height, width, 2)).
    """

    def __init__(self, label: str, cells: int, components: int = 1):
        if cells <= 0:
            raise BackendError(f"buffer {label!r} needs at least one element, got {cells}")
        shape = (cells,) if components == 1 else (cells, components)
        self.label = label
        self.cells = cells
        self.components = components
        self.data = np.zeros(shape, dtype=np.float32)

    @property
    def nbytes(self) -> int:
        return 0 if self.data is None else self.data.nbytes

    @property
    def destroyed(self) -> bool:
        return self.data is None

    def destroy(self):
        self.data = None

    def __repr__(self):
        state = "destroyed" if self.destroyed else f"{self.nbytes} bytes"
        return f"Buffer({self.label!r}, cells={self.cells}, components={self.components}, {state})"


def _require_live(buf: Buffer):
    if buf.destroyed:
        raise BackendError(f"buffer {buf.label!r} was used after destroy()")


class CommandEncoder:
    """
    Records commands without running them. `finish()` hands the recorded
    list to the queue.

    Every dispatch declares which buffers it reads and which it writes.
    A buffer may not be both: a kernel never overwrites a field that the
    same pass is still reading (use the scratch half of a PingPong instead).
    """

    def __init__(self, label: str = None):
        self.label = label
        self._commands = []
        self._finished = False

    def _record(self, name: str, fn):
        if self._finished:
            raise BackendError(f"encoder {self.label!r} already finished")
        self._commands.append((name, fn))

    def clear_buffer(self, buf: Buffer):
        _require_live(buf)
        self._record(f"clear:{buf.label}", lambda: buf.data.fill(0.0))

    def copy_buffer_to_buffer(self, src: Buffer, dst: Buffer):
        _require_live(src)
        _require_live(dst)
        if src is dst:
            raise BackendError(f"copy from {src.label!r} onto itself")
        if src.data.shape != dst.data.shape:
            raise BackendError(
                f"copy size mismatch: {src.label!r} {src.data.shape} → {dst.label!r} {dst.data.shape}"
            )
        self._record(f"copy:{src.label}->{dst.label}", lambda: np.copyto(dst.data, src.data))

    def dispatch(self, kernel, params, reads=(), writes=(), label: str = None):
        """
        Record one kernel pass over the grid.

        The kernel is called as `kernel(params, *read_arrays, *write_arrays)`
        and must fill its write arrays in place.
        """
        reads = tuple(reads)
        writes = tuple(writes)
        if not writes:
            raise BackendError(f"kernel {kernel.__name__} dispatched without an output buffer")
        for buf in reads + writes:
            _require_live(buf)
        aliased = [w.label for w in writes if any(w is r for r in reads)]
        if aliased:
            raise BackendError(
                f"kernel {kernel.__name__} reads and writes the same buffer(s): {', '.join(aliased)}"
            )

        def run():
            kernel(params, *[b.data for b in reads], *[b.data for b in writes])

        self._record(label or kernel.__name__, run)

    def finish(self) -> list:
        self._finished = True
        return list(self._commands)


_STOP = object()   # worker sentinel


class Queue:
    """
    In-order submission queue backed by a single daemon worker thread.

    Each job resolves a `concurrent.futures.Future`; a job that raises
    resolves its future with that exception.
    """

    def __init__(self, name: str = "fluidlab-queue"):
        self._jobs = SimpleQueue()
        self._closed = False
        self._thread = Thread(target=self._run, daemon=True, name=name)
        self._thread.start()

    def _run(self):
        while True:
            job = self._jobs.get()
            if job is _STOP:
                return
            future, fn = job
            if not future.set_running_or_notify_cancel():
                continue
            try:
                result = fn()
            except Exception as exc:
                future.set_exception(exc)
            else:
                future.set_result(result)

    def submit(self, commands) -> Future:
        """Enqueue a finished command list; the future resolves when all of it ran."""
        if isinstance(commands, CommandEncoder):
            commands = commands.finish()
        commands = list(commands)

        def run_all():
            for _, fn in commands:
                fn()
            return len(commands)

        return self.enqueue(run_all)

    def write_buffer(self, buf: Buffer, values) -> Future:
        _require_live(buf)
        values = np.asarray(values, dtype=np.float32)
        if values.size != buf.data.size:
            raise BackendError(
                f"write of {values.size} values into {buf.label!r} holding {buf.data.size}"
            )
        return self.enqueue(lambda: np.copyto(buf.data, values.reshape(buf.data.shape)))

    def on_submitted_work_done(self) -> Future:
        return self.enqueue(lambda: None)

    def enqueue(self, fn) -> Future:
        if self._closed:
            raise BackendError("queue is closed: backend has been disposed")
        future = Future()
        self._jobs.put((future, fn))
        return future

    def close(self):
        """
        Stop accepting work and cancel every job that has not started.
        A job already running is left to finish on its own.
        """
        self._closed = True
        while True:
            try:
                job = self._jobs.get_nowait()
            except Empty:
                break
            if job is not _STOP:
                job[0].cancel()
        self._jobs.put(_STOP)


class NumpyBackend:
    """
    The compute backend used by every request.

    Usage:
        with NumpyBackend(timeout=10.0) as backend:
            buf = backend.create_buffer("dye", cells)
            enc = backend.create_command_encoder("step")
            enc.dispatch(kernel, params, reads=[...], writes=[buf])
            backend.wait(backend.queue.submit(enc))
            host = backend.read_buffer(buf)
    """

    name = BACKEND_NAME

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        if timeout is None or timeout <= 0:
            raise BackendError(f"timeout must be a positive number of seconds, got {timeout!r}")
        self.timeout = float(timeout)
        self.queue = Queue()
        self._buffers = []
        self._disposed = False

    # ── Resources ─────────────────────────────────────────────────────────
    def create_buffer(self, label: str, cells: int, components: int = 1) -> Buffer:
        if self._disposed:
            raise BackendError("backend has been disposed")
        buf = Buffer(label, cells, components)
        self._buffers.append(buf)
        return buf

    def create_command_encoder(self, label: str = None) -> CommandEncoder:
        if self._disposed:
            raise BackendError("backend has been disposed")
        return CommandEncoder(label)

    # ── Synchronisation ───────────────────────────────────────────────────
    def wait(self, future: Future, what: str = "submitted work"):
        """Block until `future` resolves, at most `self.timeout` seconds."""
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeoutError as exc:
            raise BackendTimeout(f"timed out after {self.timeout:g}s waiting for {what}") from exc

    # ── Readback ──────────────────────────────────────────────────────────
    def map_read(self, buf: Buffer) -> Future:
        """
        Asynchronously map a buffer for host reading. Resolves (in queue
        order, after all previously submitted work) to a host copy.
        """
        def snapshot():
            if buf.destroyed:
                raise ReadbackError(f"cannot map {buf.label!r}: buffer was destroyed")
            return buf.data.copy()

        return self.queue.enqueue(snapshot)

    def read_buffer(self, buf: Buffer) -> np.ndarray:
        return self.wait(self.map_read(buf), f"readback of {buf.label!r}")

    # ── Lifetime ──────────────────────────────────────────────────────────
    def dispose(self):
        if self._disposed:
            return
        self._disposed = True
        self.queue.close()
        for buf in self._buffers:
            buf.destroy()
        self._buffers.clear()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.dispose()
        return False

    def __repr__(self):
        return f"NumpyBackend(name={self.name!r}, timeout={self.timeout}, buffers={len(self._buffers)})"

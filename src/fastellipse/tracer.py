"""
Hierarchical runtime tracing for the fast ellipse extractor.

Every stage runs inside a timed span, and stages report their per-group
entity counts as events. Lines go to stderr, optionally mirrored to a trace
file and followed by a JSON record of the same event.
"""

import functools
import hashlib
import json
import sys
import time
from contextlib import contextmanager
from datetime import datetime

import numpy as np
from pydantic import BaseModel


LEVELS = {"ERROR": 0, "WARN": 1, "INFO": 2, "DEBUG": 3}


class Tracer:
    """Process-wide tracer; disabled until configured."""

    def __init__(self):
        self.enabled = False
        self.level = "INFO"
        self.json_output = False
        self._file = None
        self._stack = []

    def configure(self, enabled=False, level="INFO", file_path=None, json_output=False):
        level = level.upper()
        if level not in LEVELS:
            raise ValueError(f"Unknown trace level: {level}")

        self.close()
        self.enabled = enabled
        self.level = level
        self.json_output = json_output
        if enabled and file_path:
            self._file = open(file_path, "w", encoding="utf-8")

    def close(self):
        """Close the trace file, if any."""
        if self._file:
            self._file.close()
            self._file = None

    def _wants(self, level):
        return self.enabled and LEVELS.get(level, 2) <= LEVELS[self.level]

    def _emit(self, level, location, message, meta=None):
        now = datetime.now()
        stamp = now.strftime("%H:%M:%S.") + f"{now.microsecond // 1000:03d}"
        depth = len(self._stack)

        out = [f"{stamp} {level:<5} {'  ' * depth}{location}  {message}"]
        if self.json_output:
            out.append(json.dumps({
                "timestamp": stamp,
                "level": level,
                "depth": depth,
                "location": location,
                "message": message,
                "meta": {k: summarize(v) for k, v in (meta or {}).items()},
            }))

        for line in out:
            print(line, file=sys.stderr)
            if self._file:
                self._file.write(line + "\n")
        if self._file:
            self._file.flush()

    @contextmanager
    def span(self, name, module="", **meta):
        """
        Timed span around one stage or step.

        An exception inside the span is logged at ERROR with the elapsed
        time and re-raised.
        """
        if not self.enabled:
            yield
            return

        location = f"{module}:{name}" if module else name
        self._emit("INFO", location, _with_meta("start", meta), meta)
        self._stack.append(location)
        started = time.perf_counter()

        try:
            yield
        except Exception as e:
            self._stack.pop()
            elapsed = (time.perf_counter() - started) * 1000
            self._emit("ERROR", location, f"failed dt={elapsed:.0f}ms error={type(e).__name__}: {str(e)[:100]}")
            raise

        self._stack.pop()
        elapsed = (time.perf_counter() - started) * 1000
        self._emit("INFO", location, f"end ok dt={elapsed:.0f}ms")

    def event(self, message, level="INFO", **meta):
        """Log one event inside the innermost open span."""
        if not self._wants(level):
            return
        location = self._stack[-1] if self._stack else ""
        self._emit(level, location, _with_meta(message, meta), meta)


def _with_meta(message, meta):
    return " ".join([message] + [f"{k}={summarize(v)}" for k, v in meta.items()])


def summarize(obj, max_len=200):
    """Compact one-line rendering of a value for trace output, at most max_len chars."""
    text = _summary(obj)
    if len(text) > max_len:
        return text[:max_len - 3] + "..."
    return text


def _summary(obj):
    if obj is None:
        return "None"

    name = type(obj).__name__

    if isinstance(obj, np.ndarray):
        shape = "x".join(str(s) for s in obj.shape)
        data = obj.tobytes() if 0 < obj.size < 1000 else str(obj.shape).encode()
        return f"ndarray({obj.dtype},{shape},h={hashlib.md5(data).hexdigest()[:8]})"

    if isinstance(obj, BaseModel):
        # results report stage counts, entities their geometry
        if hasattr(obj, "counts"):
            return name + "(" + ",".join(f"{k}={v}" for k, v in obj.counts().items()) + ")"
        if hasattr(obj, "a") and hasattr(obj, "b"):
            return f"{name}(x={obj.x:.1f},y={obj.y:.1f},a={obj.a:.1f},b={obj.b:.1f})"
        if hasattr(obj, "start") and hasattr(obj, "end"):
            return f"{name}({obj.start}->{obj.end})"
        return f"{name}(fields={list(type(obj).model_fields)[:3]})"

    if isinstance(obj, (list, tuple)):
        if not obj:
            return f"{name}(len=0)"
        return f"{name}(len={len(obj)},first={type(obj[0]).__name__})"

    if isinstance(obj, dict):
        # per-group containers are keyed by enum members
        keys = ",".join(str(getattr(k, "name", k)) for k in list(obj)[:5])
        return f"dict(len={len(obj)},keys=[{keys}])"

    if isinstance(obj, (float, np.floating)):
        return f"{obj:.4g}"

    if isinstance(obj, (str, int, np.integer)):
        return str(obj)

    return f"<{name}>"


def trace(label=None, arg_names=None):
    """
    Run the decorated function inside a span named after it.

    Keyword arguments named in arg_names are summarized on the start line.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            if not _tracer.enabled:
                return func(*args, **kwargs)

            module = func.__module__.rsplit(".", 1)[-1]
            meta = {k: kwargs[k] for k in (arg_names or ()) if k in kwargs}
            with _tracer.span(label or func.__name__, module=module, **meta):
                return func(*args, **kwargs)

        return wrapper
    return decorator


_tracer = Tracer()


def get_tracer():
    """The process-wide tracer."""
    return _tracer


def configure_tracer(enabled=False, level="INFO", file_path=None, json_output=False):
    _tracer.configure(enabled=enabled, level=level, file_path=file_path, json_output=json_output)

"""kbforce: kettlebell force metrics from a body-worn accelerometer.

The package converts raw 3-axis acceleration into force, segments the stream
into repetitions, and aggregates per-rep and per-session summaries that can be
stored and replayed from the command line or over HTTP.
"""

__all__ = [
    "cli",
    "config",
]

__version__ = "0.1.0"

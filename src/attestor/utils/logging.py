import logging
import sys


def get_logger(name: str = "attestor", level: str | None = None):
    root = logging.getLogger("attestor")
    if not root.handlers:
        h = logging.StreamHandler(sys.stdout)
        fmt = logging.Formatter("[%(asctime)s] %(levelname)s %(name)s %(message)s")
        h.setFormatter(fmt)
        root.addHandler(h)
        root.setLevel(logging.INFO)
        root.propagate = False
    if level:
        root.setLevel(level.upper())
    return logging.getLogger(name)


def kv(**fields) -> str:
    """Render context fields as ``k=v`` pairs for log lines."""
    return " ".join(f"{k}={v}" for k, v in fields.items() if v is not None)

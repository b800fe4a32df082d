from __future__ import annotations

import gzip
import logging
import os
from pathlib import Path
from typing import TextIO

import psutil


def _make_logger(name: str, level: str = "INFO") -> logging.Logger:
    lvl = getattr(logging, level.upper(), logging.INFO)
    logger = logging.getLogger(name)
    # Configure once
    if not logger.handlers:
        handler = logging.StreamHandler()
        fmt = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        handler.setFormatter(fmt)
        logger.addHandler(handler)
    logger.setLevel(lvl)
    return logger


def _open_text_auto(path: str | Path, mode: str = "rt") -> TextIO:
    p = Path(path)
    if p.suffix.lower() == ".gz":
        return gzip.open(p, mode, encoding="utf-8", errors="replace")
    return open(p, mode, encoding="utf-8", errors="replace")


def _open_out(path: str | Path) -> TextIO:
    outp = Path(path)
    outp.parent.mkdir(parents=True, exist_ok=True)
    if outp.suffix.lower() == ".gz":
        return gzip.open(outp, "wt", encoding="utf-8")
    return open(outp, "w", encoding="utf-8")


def _get_memory_usage() -> float:
    process = psutil.Process(os.getpid())
    return process.memory_info().rss / 1024 / 1024  # Current memory usage in MB


def _fmt_float(val: float) -> str:
    """Render a value the way a 32-bit float prints: shortest repr, no trailing noise."""
    return repr(float(f"{val:.7g}"))

# src/ctdeconv/utils.py
from __future__ import annotations
import os
import platform
from pathlib import Path
from datetime import datetime

def timestamped_run_root(root_name: str = "ctdeconv_runs") -> str:
    """~/ctdeconv_runs/2025-10-27_153012"""
    stamp = datetime.now().strftime("%Y-%m-%d_%H%M%S")
    root = Path.home() / root_name / stamp
    root.mkdir(parents=True, exist_ok=True)
    return str(root)

def get_os() -> str:
    """Lower-case OS name: 'windows', 'linux' or 'osx'."""
    name = platform.system()
    if name == "Darwin":
        return "osx"
    return (name or os.name).lower()

__all__ = ["timestamped_run_root", "get_os"]

"""Smoke tests for the pygame UI.

These tests verify that the application's main loop can initialise and
execute a handful of frames without crashing when the SDL dummy video
driver is used.  They do not attempt to check rendering correctness; they
ensure the integration points between pygame and the drill core do not raise
exceptions in a headless environment.
"""

from __future__ import annotations

import os

# Use the dummy drivers before importing pygame or the application
os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
os.environ.setdefault("SDL_AUDIODRIVER", "dummy")
os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")


def test_app_runs_headless() -> None:
    """Ensure the application can start and run a few frames headlessly."""
    # Import inside the test so that environment variables take effect
    from math_trainer.app import run
    from math_trainer.persistence import LocalHistoryStore, MemoryStorage

    exit_code = run(max_frames=3, history=LocalHistoryStore(MemoryStorage()))
    assert exit_code == 0

"""Test package for the Math Trainer.

The core tests drive the problem generator, session controller, history
store and CSV export with a fake clock and an in-memory store.  The UI smoke
tests run headlessly using pygame's dummy video driver to avoid opening real
windows.  To run these tests, execute ``pytest`` from the project root.
"""

"""Standalone helpers used outside the main window.

This package holds the Matplotlib plotter for one-off snapshots of the
latest readings and the opt-in debug/instrumentation hooks shared by the
synchronizer and GUI.
"""

"""
droidlink - a client for ADB-compatible bridge servers.

Talks the host smart-socket protocol directly to:
- discover attached devices and track their state
- run shell commands and stream their output
- parse logcat streams into structured records
- push and pull files with progress and cancellation
"""

__version__ = "0.1.0"
__author__ = "droidlink Contributors"

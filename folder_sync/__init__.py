"""
Folder Sync - bring a target folder in line with a captured reference folder.

Features:
- Capture a reference folder once into a checksummed state file
- Diff a target folder against that state without the reference present
- Minimal ordered operations: mkdir, copy/update, move, delete
- Move/rename detection by content digest (xxh3-128)
- Parallel hashing with optional priority scheduling and a hash cache
"""

__version__ = "1.0.0"

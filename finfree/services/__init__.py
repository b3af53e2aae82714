"""
External collaborators: receipt extraction and storage/sync backends.

Import from the subpackages directly.
"""

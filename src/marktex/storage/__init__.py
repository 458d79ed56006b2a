"""Persistence: object store, durable key-value store, snapshot codec, autosave.

Snapshot shape (one value under a fixed key):
    {
      "files": [{"id", "name", "type", "content"?, "encodedPayload"?, "children"?}],
      "currentFile": "main.md",
      "timestamp": 1760000000000
    }
"""

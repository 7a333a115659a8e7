"""nvdcache: offline cache of the NVD CVE JSON feeds.

This package provides the core logic for syncing NVD feed shards into a
local SQLite store and searching it by CVE ID or description text.
"""

__version__ = "0.1.0"

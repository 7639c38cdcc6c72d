"""
Edge caching package.

Fetch-through cache over origin URLs. Entries are replaced whole; concurrent
misses for one key share a single origin fetch.
"""

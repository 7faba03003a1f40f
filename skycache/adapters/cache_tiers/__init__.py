"""Cache tier adapters.

Uniform key-value storage over process memory (volatile), a SQLite file
(durable) and a directory of small JSON records (degraded). The artifact
cache composes them into a fallback chain.
"""

"""
Vehicle inventory import/export pipeline.

Modules:
    connectors: SFTP (and placeholder FTP) endpoints
    codecs: CSV, JSON and XML parsing/serialization
    transformers: field mapping, heuristics, rules and validation
    loaders: vehicle upserts and export projections
    tracking: execution history records
    locks: per-config run exclusion and cancellation
    scheduler: next-run arithmetic
    runner: ExecutionEngine, which ties the above together
    config_store: persistence of pipeline configs
"""

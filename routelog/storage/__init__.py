"""routelog storage — durable writes, critical replication, and readers.

Modules
-------
writer
    ``DurableWriter``: path anchoring, rotation, retrying appends, and the
    ``write_errors`` / ``batch_write_errors`` fallback cascade.
replicator
    ``CriticalReplicator``: ``*.critical.log`` replicas in the critical root.
reader
    ``read_log_file`` / ``decrypt_log_file`` for newline-delimited JSON logs.
"""

"""Push notification dispatch: batching, retry with backoff and token pruning."""

"""Per-pot packet capture: interface binding, capture tasks, network watcher."""

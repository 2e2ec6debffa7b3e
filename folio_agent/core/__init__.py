"""Agent runtime: loop, registry, error classification, compaction, providers."""

"""Object stores, a part-based local disk cache with size-bounded eviction, and write batches."""

__version__ = "0.1.0"
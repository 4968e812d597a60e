"""Benchmark persistence."""
__all__ = ['BenchmarkStore', 'call_with_retry']

def __getattr__(name):
    if name == 'BenchmarkStore':
        from .benchmark_store import BenchmarkStore
        return BenchmarkStore
    elif name == 'call_with_retry':
        from .retry import call_with_retry
        return call_with_retry
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

"""Data-access interfaces and the in-memory store."""
__all__ = [
    'ConversionDataSource',
    'TenantDataSource',
    'BenchmarkRepository',
    'PredictionRepository',
    'InMemoryDataStore',
]

def __getattr__(name):
    if name == 'InMemoryDataStore':
        from .memory import InMemoryDataStore
        return InMemoryDataStore
    elif name in __all__:
        from . import interfaces
        return getattr(interfaces, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

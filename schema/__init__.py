"""Schema definitions for segments, records, profiles and predictions."""
__all__ = [
    'SegmentDescriptor',
    'ConversionRecord', 'AggregatedBenchmark', 'ConversionInsight',
    'InsightReport', 'OptimizationOpportunity',
    'TenantProfile', 'TenantHistoryRecord', 'HistoricalTenant',
    'Prediction', 'TrainingReport', 'AccuracyReport',
    'FeatureVocabulary',
]

_MODULES = {
    'SegmentDescriptor': 'segment',
    'ConversionRecord': 'records',
    'AggregatedBenchmark': 'records',
    'ConversionInsight': 'records',
    'InsightReport': 'records',
    'OptimizationOpportunity': 'records',
    'TenantProfile': 'profile',
    'TenantHistoryRecord': 'profile',
    'HistoricalTenant': 'profile',
    'Prediction': 'profile',
    'TrainingReport': 'profile',
    'AccuracyReport': 'profile',
    'FeatureVocabulary': 'vocabulary',
}


def __getattr__(name):
    if name in _MODULES:
        import importlib
        module = importlib.import_module(f'.{_MODULES[name]}', __name__)
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

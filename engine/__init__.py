"""Aggregation, insight and prediction engines."""
__all__ = [
    'ConversionAggregator',
    'InsightGenerator',
    'SimilarityMatcher',
    'SuccessScorer',
    'FeatureBuilder',
    'PredictionBackend',
    'HeuristicBackend',
    'TrainedBackend',
    'FallbackBackend',
    'build_backend',
    'PredictionEngine',
]

_MODULES = {
    'ConversionAggregator': 'aggregator',
    'InsightGenerator': 'insights',
    'SimilarityMatcher': 'similarity',
    'SuccessScorer': 'success',
    'FeatureBuilder': 'features',
    'PredictionBackend': 'backends',
    'HeuristicBackend': 'backends',
    'TrainedBackend': 'backends',
    'FallbackBackend': 'backends',
    'build_backend': 'backends',
    'PredictionEngine': 'predictor',
}


def __getattr__(name):
    if name in _MODULES:
        import importlib
        module = importlib.import_module(f'.{_MODULES[name]}', __name__)
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

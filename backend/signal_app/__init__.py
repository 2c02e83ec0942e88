"""Runtime layer: settings, data sources, caching, resilience and the engine."""

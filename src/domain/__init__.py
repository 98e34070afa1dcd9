"""
Domain Layer - Pure Opportunity Detection Logic

This layer contains:
- Entities: Feature snapshots, options context and emitted signals
- Value Objects: Asset class, direction and analysis mode
- Services: Detectors, scoring, thresholds and deduplication

No I/O happens in this layer.
"""

"""Infrastructure Layer for the Opportunity Scanner.

Provides the observability concerns around the scanner: structured logging
and metrics collection. The scan path itself performs no I/O.
"""

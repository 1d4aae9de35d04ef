"""
racecheck: concurrent reservation load generator and race condition detector

Drives many simulated clients through the same "reserve tokens" operation
against a remote service within controlled timing windows, then classifies
the outcomes to surface concurrency defects in the target service:

1. Lost updates and double-spends under burst load
2. Inconsistent availability checks under sustained and spiking load
3. Degradation while load ramps up gradually

The engine is made of a timing generator, a concurrent dispatcher, a
concurrency tracker, an anomaly classifier and a metrics aggregator.
"""

__version__ = "0.1.0"

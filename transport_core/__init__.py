"""Transport analytics core.

Stateful monitors that consume the energy-transport simulation state each tick
and derive safety classifications, stability diagnostics, transport-readiness
predictions, optimization suggestions and a throttled peer-sync channel.

Layout:
- monitors: SafetyMonitor, StabilityMonitor, FrameRateTracker, memory pressure
- analytics: TransportPredictor, OptimizationAdvisor
- sync: RealtimeSyncChannel and the in-memory realtime hub
- runtime: AnalyticsRuntime wiring everything onto one asyncio loop
"""

__version__ = "0.4.0"

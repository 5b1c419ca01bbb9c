"""
Signal swarm - multi-agent crypto signal pipeline.

One pass: collect market data, scan, analyze, validate (price oracle and
quality gate), generate content and hand it to tiered distribution, falling
back to market intel whenever no trade qualifies.
"""

__version__ = "0.1.0"

"""
External service clients: market data providers and tier delivery.
"""

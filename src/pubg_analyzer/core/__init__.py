"""
Core building blocks: geometry helpers, telemetry decoding and the PUBG API client.
"""

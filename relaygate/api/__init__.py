"""
HTTP surface for relaygate
"""

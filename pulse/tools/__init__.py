"""
Local tooling: synthetic packet producer and authoritative counter responder.
"""

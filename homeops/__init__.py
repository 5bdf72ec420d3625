"""
homeops — household activity ledger with a silence-first responder.
"""

__version__ = '1.0.0'

"""
bookingslots - available-slot computation and double-booking protection.
"""

__version__ = "0.1.0"

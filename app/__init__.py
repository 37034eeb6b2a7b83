"""
                Delta Restaurant Backend

REST backend for a restaurant website: menu, contact form, reservations
and table orders numbered by a daily-resetting sequence.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"

"""
inkslot - availability, slot scheduling and deposit booking for tattoo artists.
"""

__version__ = "0.1.0"

"""
Floodwatch: live flood risk monitoring for mapped areas.
"""

__version__ = "1.0.0"

"""
LED matrix control panel backend: image store and frame delivery.
"""

__version__ = "0.1.0"

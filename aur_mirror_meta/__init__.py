"""
Mirror AUR package metadata from the GitHub AUR mirror into a local index.
"""

__version__ = "0.1.0"

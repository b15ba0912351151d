"""
Upstream access (GitHub AUR mirror) and the sync pipeline.
"""

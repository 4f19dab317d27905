"""
Command-line tools for TagDB.
"""

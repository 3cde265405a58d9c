"""
Command-line interface for generations.
"""

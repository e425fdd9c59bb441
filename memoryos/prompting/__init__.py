"""Prompting package.

Exports helpers that assemble system instructions for memory-grounded chat
answers and for tag generation.
"""

"""
NumPy implementations of the domain contracts.
"""

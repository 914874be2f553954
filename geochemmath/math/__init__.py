"""
Statistical engines for geochemmath.
"""

"""
Content proxy service package.
"""

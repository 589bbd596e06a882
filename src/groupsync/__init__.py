"""
Keeps directory groups in line with declarative group records.
"""

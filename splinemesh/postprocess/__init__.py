"""
Mesh construction, parameter sampling and export.
"""

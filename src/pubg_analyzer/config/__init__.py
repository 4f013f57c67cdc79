"""
Static configuration tables (item catalog, weapon id normalisation).
"""

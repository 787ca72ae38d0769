"""
Infrastructure layer: driver connection, database handle and collections.
"""

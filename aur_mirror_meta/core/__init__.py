"""
Process-wide configuration, shared singletons and the exception taxonomy.
"""

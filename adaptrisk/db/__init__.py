"""Database layer: async engine, compat types, document table."""

"""Database access: connection pool, table constants, schema migrations."""

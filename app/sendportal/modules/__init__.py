"""
Feature modules live under this package.

Keep module boundaries clean: each module should own its routes/models/service,
while reusing platform primitives (auth, tenancy, audit, forms, DB session).
"""

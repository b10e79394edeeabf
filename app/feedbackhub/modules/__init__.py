"""
Feature modules live under this package.

Keep module boundaries clean: each module owns its models/service/api,
while reusing platform primitives (auth, RBAC, audit, directory, DB session).
"""

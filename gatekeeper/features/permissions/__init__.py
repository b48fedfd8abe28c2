"""
Permission management feature module.

Compiles per-resource role/action matrices into persisted permission records
and answers allow/deny decisions for actors, including relationship
operations that need both sides granted.
"""

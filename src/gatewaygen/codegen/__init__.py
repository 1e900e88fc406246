"""Built-in generators, Go type mapping, casing helpers and templates.

Import from the submodules; ``gatewaygen.codegen.system`` assembles the
default module system.
"""

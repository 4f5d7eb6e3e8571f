"""Plugin executables shipped with the host.

Each module is a standalone plugin process started by the plugin loader
(`python -m toolhost.extensions.<name>`).
"""

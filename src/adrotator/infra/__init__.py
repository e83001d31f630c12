"""
Infrastructure layer - settings, logging and error types.

This layer contains technical concerns shared by the runtime, the AdSource
service and the CLI.
"""

# ==============================================================================
# CLI Command Modules
# ==============================================================================
"""
Command implementations registered on the Typer app in postmetric.app.
"""

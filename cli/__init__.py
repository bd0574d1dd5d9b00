"""Terminal client for the sensor dashboard HTTP API.

The Typer application is ``cli.app.app``; the package root does not re-export
it, so ``cli.app`` always names the module.
"""

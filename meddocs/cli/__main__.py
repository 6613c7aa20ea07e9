"""Allow ``python -m meddocs.cli`` execution."""

from meddocs.cli.commands import main

main()

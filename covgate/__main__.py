from covgate.cli import cli

cli(prog_name="covgate")

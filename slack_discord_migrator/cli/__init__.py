"""Command-line interface: the click group and its subcommands."""

__all__ = [
    "commands",
    "common",
    "init_cmd",
    "migrate_cmd",
    "provision_cmd",
    "report",
]

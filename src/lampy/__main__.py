"""Main function for lampy."""

from lampy.core import cli


def run_main() -> None:
    """Main entry point to lampy."""
    cli.app()


if __name__ == "__main__":
    cli.app()

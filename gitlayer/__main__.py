"""Entry point for running gitlayer as a module."""

from gitlayer.cli import app


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()

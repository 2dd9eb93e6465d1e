from __future__ import annotations
import typer

from .merge import merge_cmd

app = typer.Typer(help="Merge a patch from the Debian BTS into its packaging repository and build it")
app.command("merge")(merge_cmd)


def main() -> None: 
    app()


if __name__ == "__main__":
    main()

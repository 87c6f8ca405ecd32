from wsgateway.cli import typer_app

typer_app()

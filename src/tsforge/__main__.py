from tsforge.cli.app import app

app()

from gitops_platform.cli import app

app()

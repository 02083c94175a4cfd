"""Pulumi entry point; `pulumi up` applies the graph declared here."""
from gitops_platform import program

program.run()

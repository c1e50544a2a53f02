"""
baredeploy - Runtime-aware deployment of applications onto a bare remote host.

This package classifies an application's runtime, provisions a remote host over
SSH (packages, source, dependencies, process supervision, nginx reverse proxy)
and offers a symmetric teardown.
"""

__version__ = "0.1.0"
__author__ = "baredeploy contributors"

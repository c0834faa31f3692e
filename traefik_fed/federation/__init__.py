"""Traefik federation service

This package wires the poll loop, the HTTP output and the file output into one
process that republishes routers from several Traefik instances as a single
dynamic configuration.
"""

from .service import FederationService

__all__ = ['FederationService']

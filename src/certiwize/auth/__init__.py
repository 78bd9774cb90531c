"""Server-side auth session handling over the hosted auth service."""

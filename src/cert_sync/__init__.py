"""
cert_sync — keep cert-manager TLS secrets synchronized with AWS ACM.

Watches Kubernetes secrets annotated `sync-to-acm: "true"`, finds the ACM
certificate serving the secret's domain, and imports or re-imports the
certificate material so load balancers always reference a current one.

Built on the Railway-Oriented Programming (ROP) `railway` package for
explicit, composable error handling.
"""

__version__ = "0.1.0"

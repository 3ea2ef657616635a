"""
cert_issuer — bulk certificate issuance.

Reads a roster of recipients (CSV), renders a certificate per valid row,
stores it in object storage, records it in PostgreSQL and emails the
recipient a link. Every row ends up in exactly one bucket of the batch
report: invalid, succeeded or failed.

Built on the Railway-Oriented Programming (ROP) framework for
explicit, composable, functional error handling.
"""

__version__ = "0.1.0"

"""
cert_trust — X.509 trust evaluation.

Builds certificate chains from trusted and untrusted sets, validates them
in a fixed check order (signatures, validity windows, trust anchor, CA and
path-length constraints, intended usage, CRL revocation) and reports a
single Validity. Also issues certificates and CRLs for tests and small CAs.

Errors travel on the Railway-Oriented Programming track (Result) rather
than as exceptions.
"""

__version__ = "0.1.0"

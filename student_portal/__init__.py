"""Student Registration Portal - Backend.

Students register, log in and edit a small subset of their own record.
A single administrator (configured out-of-band) manages every record.

Core concepts:
- Credentials are stored as scheme-tagged hashes; legacy digests are
  upgraded to the current scheme on the next successful login.
- Sessions are opaque bearer tokens with an absolute expiry, one live
  session per subject.

See README for setup and usage.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"

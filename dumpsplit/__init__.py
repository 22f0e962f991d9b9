"""Split, fingerprint and upload large diagnostic dumps"""

__version__ = "1.1.0"
